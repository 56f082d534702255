"""Main FastAPI application for the TUID recognition backend."""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings, ensure_directories
from core.logging import log
from api import health, upload, recognize
from api.dependencies import get_session_manager
from ingestion.reaper import SessionReaper
from ocr.tesseract_engine import shutdown_tesseract_engine

# Ensure directories exist
ensure_directories()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    # Startup
    log.info("TUID Backend starting up...")
    log.info(f"Storage root: {settings.STORAGE_ROOT}")
    log.info(f"Pipeline mode: {settings.PIPELINE_MODE}, quota backend: {settings.QUOTA_BACKEND}")
    log.info(f"API running on {settings.API_HOST}:{settings.API_PORT}")

    reaper = None
    if settings.SESSION_REAPER_ENABLED:
        reaper = SessionReaper(get_session_manager(), interval=settings.SESSION_REAPER_INTERVAL_SECONDS)
        reaper.start()

    yield

    # Shutdown
    log.info("TUID Backend shutting down...")
    if reaper is not None:
        reaper.stop()
    shutdown_tesseract_engine()


# Create FastAPI app
app = FastAPI(
    title="TUID Backend",
    description="Receipt transaction identifier recognition via chunked upload and OCR",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",  # Swagger UI documentation
    redoc_url="/redoc",  # ReDoc documentation
    openapi_url="/openapi.json",  # OpenAPI schema
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health.router)
app.include_router(upload.router)
app.include_router(recognize.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD,
        log_config=None,  # keep uvicorn loggers forwarded to loguru
    )
