from setuptools import setup, find_packages

setup(
    name="logwarden",
    version="0.1.0",
    packages=find_packages(include=["logwarden", "logwarden.*"]),
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#")
    ],
    extras_require={
        "test": ["pytest>=7.4.0"],
    },
    entry_points={
        "console_scripts": [
            "logwarden=logwarden.cli:main",
        ],
    },
    description="Rule-based anomaly detection and security narratives for proxy log exports",
    python_requires=">=3.9",
)
