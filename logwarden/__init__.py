# logwarden/__init__.py
"""
LogWarden - rule-based anomaly detection for proxy log exports
"""

__version__ = "0.1.0"
