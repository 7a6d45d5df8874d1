# logwarden/api/main.py
"""
FastAPI application entry point
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routes import health, auth, logs
from . import __version__
from ..core.config import settings

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown events
    """
    # === Startup ===
    logger.info(f"Starting {settings.app_name} API v{__version__}...")

    from ..core.database import db
    removed = db.purge_expired_sessions()
    logger.info(f"Database ready at {db.db_path} ({removed} expired sessions purged)")
    logger.info(f"Narrative provider: {settings.llm_provider}")

    yield

    # === Shutdown ===
    logger.info(f"Shutting down {settings.app_name} API...")


# Create the FastAPI app
app = FastAPI(
    title="LogWarden API",
    description="""
    REST API for LogWarden - rule-based anomaly detection for proxy logs

    ## Features
    - **Uploads**: Store CSV exports from a web proxy / firewall
    - **Analysis**: Run the anomaly rules and generate a security narrative
    - **Results**: Stored summaries and per-line anomaly details

    ## Authentication
    Sign up or log in under `/api/auth` to get a bearer token.
    Send it as `Authorization: Bearer <token>` to the `/api/logs` endpoints.
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# === CORS Middleware ===
# Dashboard dev servers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Global Error Handler ===
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all error handler for unhandled exceptions
    """
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred",
            "error_type": type(exc).__name__
        }
    )


# === Mount Routers ===
API_PREFIX = "/api"

app.include_router(health.router, prefix=API_PREFIX)
app.include_router(auth.router, prefix=API_PREFIX)
app.include_router(logs.router, prefix=API_PREFIX)


# === Root Endpoint ===
@app.get("/", tags=["Root"])
async def root():
    """API root - basic info"""
    return {
        "name": "LogWarden API",
        "version": __version__,
        "docs": "/docs",
        "health": f"{API_PREFIX}/health"
    }
