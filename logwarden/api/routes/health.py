# logwarden/api/routes/health.py
"""
Health check endpoint
"""

from fastapi import APIRouter

from ..schemas import HealthResponse
from .. import __version__

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Always ok while the server is running"""
    return HealthResponse(status="ok", version=__version__)
