# logwarden/core/__init__.py
"""
Core modules for LogWarden
"""

from .models import (
    LogRecord,
    Anomaly,
    AnomalySet,
    AnomalyStatistics,
    SecurityInsights,
    FileNarrative,
    AnalysisSummary,
    User,
    LogFile,
    AnalysisRecord,
)

from .config import settings, Settings, get_settings, reload_settings

from .errors import (
    LogWardenError,
    InputError,
    EmptyInputError,
    UnreadableFileError,
    NarrativeServiceError,
    PersistenceError,
    AuthenticationError,
)

__all__ = [
    # Models
    "LogRecord",
    "Anomaly",
    "AnomalySet",
    "AnomalyStatistics",
    "SecurityInsights",
    "FileNarrative",
    "AnalysisSummary",
    "User",
    "LogFile",
    "AnalysisRecord",
    # Config
    "settings",
    "Settings",
    "get_settings",
    "reload_settings",
    # Errors
    "LogWardenError",
    "InputError",
    "EmptyInputError",
    "UnreadableFileError",
    "NarrativeServiceError",
    "PersistenceError",
    "AuthenticationError",
]
