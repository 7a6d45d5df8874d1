# logwarden/api/__init__.py
"""
REST API for LogWarden
"""

from .. import __version__

__all__ = ["__version__"]
