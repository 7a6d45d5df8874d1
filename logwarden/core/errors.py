# logwarden/core/errors.py
"""
Exception hierarchy for LogWarden

InputError and its subclasses are raised before any record is produced.
NarrativeServiceError is recovered by the analysis service and never
reaches the caller. PersistenceError wraps storage failures.
"""

from typing import Optional, Dict, Any


class LogWardenError(Exception):
    """Base exception for all LogWarden errors."""


class InputError(LogWardenError):
    """The uploaded log file cannot be turned into records."""


class EmptyInputError(InputError):
    """The file has no non-blank lines."""

    def __init__(self, message: str = "Empty CSV file"):
        super().__init__(message)


class UnreadableFileError(InputError):
    """The stored upload is missing or cannot be decoded."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        message = f"Cannot read log file: {path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class NarrativeServiceError(LogWardenError):
    """The text-generation provider failed or returned nothing usable."""

    def __init__(self, message: str, provider: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.provider = provider
        self.details = details or {}
        super().__init__(f"[{provider}] {message}")


class PersistenceError(LogWardenError):
    """A database write or read failed."""


class AuthenticationError(LogWardenError):
    """Bad credentials or an invalid/expired session token."""
