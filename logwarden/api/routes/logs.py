# logwarden/api/routes/logs.py
"""
Log file endpoints: upload, list, analyze, results
All routes are scoped to the authenticated user's own files
"""

import asyncio
import logging
import uuid
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from ..schemas import (
    LogResponse, LogListResponse, AnalyzeResponse,
    AnalysisResponse, LLMTestResponse,
)
from ..auth import get_current_user
from ...core.config import get_settings
from ...core.database import Database, get_db
from ...core.errors import InputError, PersistenceError
from ...core.models import LogFile, User
from ...services.analysis import AnalysisService, get_analysis_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/logs", tags=["Logs"])


def _get_owned_log(database: Database, log_id: int, user: User) -> LogFile:
    log_file = database.get_log_file(log_id, user.id)
    if log_file is None:
        raise HTTPException(status_code=404, detail="Log not found")
    return log_file


@router.post("/upload", response_model=LogResponse, status_code=status.HTTP_201_CREATED)
async def upload_log(
    file: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    database: Database = Depends(get_db)
):
    """
    Upload a CSV log file

    The file is stored under the upload directory with a unique prefix;
    analysis is a separate call.
    """
    settings = get_settings()

    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    original_filename = Path(file.filename).name
    if not settings.is_supported_file(original_filename):
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")

    contents = await file.read()
    if len(contents) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large (max {settings.max_upload_size_mb}MB)"
        )

    stored_name = f"{uuid.uuid4().hex}-{original_filename}"
    file_path = settings.upload_dir / stored_name
    file_path.write_bytes(contents)

    log_file = database.add_log_file(user.id, stored_name, original_filename, str(file_path))
    logger.info(f"User {user.id} uploaded {original_filename} ({len(contents)} bytes) as log {log_file.id}")

    return LogResponse(log=log_file)


@router.get("", response_model=LogListResponse)
async def list_logs(user: User = Depends(get_current_user), database: Database = Depends(get_db)):
    """List the user's uploads with their analysis totals, newest first"""
    return LogListResponse(logs=database.list_log_files(user.id))


# Declared before /{log_id} so "test-llm" isn't read as an id
@router.get("/test-llm", response_model=LLMTestResponse)
async def test_llm(
    user: User = Depends(get_current_user),
    service: AnalysisService = Depends(get_analysis_service)
):
    """Check that the configured narrative provider answers"""
    client = service.narrative_client
    provider = client.provider.name

    if await client.test_connection():
        return LLMTestResponse(
            status="success",
            message=f"{provider} connection successful",
            provider=provider,
            llm_enabled=True
        )

    return JSONResponse(
        status_code=500,
        content=LLMTestResponse(
            status="error",
            message=f"{provider} connection failed",
            provider=provider,
            llm_enabled=False
        ).model_dump()
    )


@router.get("/{log_id}", response_model=LogResponse)
async def get_log(log_id: int, user: User = Depends(get_current_user), database: Database = Depends(get_db)):
    return LogResponse(log=_get_owned_log(database, log_id, user))


@router.post("/{log_id}/analyze", response_model=AnalyzeResponse)
async def analyze_log(
    log_id: int,
    user: User = Depends(get_current_user),
    database: Database = Depends(get_db),
    service: AnalysisService = Depends(get_analysis_service)
):
    """
    Run the rule-based analysis and narrative on a log file

    Re-running replaces the previous result.
    """
    log_file = _get_owned_log(database, log_id, user)

    try:
        outcome = await service.analyze(log_file)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Failed to save analysis for log {log_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save analysis results")

    return AnalyzeResponse(status="success", **asdict(outcome))


@router.get("/{log_id}/analysis", response_model=AnalysisResponse)
async def get_analysis(log_id: int, user: User = Depends(get_current_user), database: Database = Depends(get_db)):
    """Stored analysis summary of a log file"""
    _get_owned_log(database, log_id, user)

    analysis = database.get_analysis(log_id)
    if analysis is None:
        raise HTTPException(status_code=404, detail="Analysis not found")

    return AnalysisResponse(analysis=analysis, status="success")


@router.get("/{log_id}/anomalies")
async def get_anomalies(
    log_id: int,
    user: User = Depends(get_current_user),
    database: Database = Depends(get_db),
    service: AnalysisService = Depends(get_analysis_service)
):
    """
    Per-line anomaly details

    Recomputed from the stored file on each call (no narrative).
    """
    log_file = _get_owned_log(database, log_id, user)

    try:
        return await asyncio.to_thread(service.anomaly_report, log_file)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
