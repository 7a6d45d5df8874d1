# logwarden/api/schemas.py
"""
Request/Response schemas for the API
These wrap the core models in the envelopes the dashboard expects
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict

from ..core.models import LogFile, LogFileListing, AnalysisRecord


# ===== Auth Endpoints =====

class SignupRequest(BaseModel):
    """
    Request body for signup
    Fields are optional so a missing one gives our own 400, not a 422
    """
    email: Optional[str] = None
    password: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "analyst@example.com",
                "password": "correct-horse"
            }
        }
    )


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AuthResponse(BaseModel):
    """Returned by signup and login"""
    message: str
    token: str
    expires_at: datetime
    user: Dict[str, Any]


class MessageResponse(BaseModel):
    message: str


# ===== Log Endpoints =====

class LogResponse(BaseModel):
    log: LogFile


class LogListResponse(BaseModel):
    logs: List[LogFileListing]


class AnalyzeResponse(BaseModel):
    """Response after analysing a log file"""
    status: str = "success"
    total_anomalies: int
    total_analyzed: int
    analysis_id: int
    message: str


class AnalysisResponse(BaseModel):
    analysis: AnalysisRecord
    status: str = "success"


class LLMTestResponse(BaseModel):
    """Narrative provider connectivity check"""
    status: str
    message: str
    provider: str
    llm_enabled: bool


# ===== Health Endpoints =====

class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Standard error response"""
    detail: str
    error_type: Optional[str] = None
