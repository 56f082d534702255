"""Configuration management for the TUID recognition backend."""

from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_RELOAD: bool = False
    CORS_ORIGINS: List[str] = ["*"]

    # Storage Paths
    STORAGE_ROOT: str = "./storage"
    STORAGE_SCRATCH: str = "./storage/scratch"  # One directory per upload session
    STORAGE_UPLOADS: str = "./storage/uploads"  # Reassembled artifacts awaiting recognition

    # Chunked Upload Settings
    MAX_CHUNK_SIZE_MB: int = 5
    MAX_CHUNK_COUNT: int = 64
    SESSION_IDLE_TIMEOUT_SECONDS: float = 300.0  # Sessions older than this are reaped
    SESSION_REAPER_INTERVAL_SECONDS: float = 60.0
    SESSION_REAPER_ENABLED: bool = True

    # Orientation Heuristics
    ORIENTATION_LANDSCAPE_RATIO: float = 1.5
    ORIENTATION_PORTRAIT_RATIO: float = 0.7
    ORIENTATION_VERTICAL_DOMINANCE: float = 1.2  # vertical sharpness must exceed horizontal by 20%
    ORIENTATION_PROBE_SIZE: int = 200
    ORIENTATION_PROBE_THIN_SIDE: int = 50

    # Preprocessing Settings
    PREPROCESS_TARGET_WIDTH: int = 2000
    PREPROCESS_DARK_BRIGHTNESS: float = 140.0
    PREPROCESS_LOW_CONTRAST: float = 50.0
    PREPROCESS_LINEAR_GAIN: float = 2.0
    PREPROCESS_LINEAR_OFFSET: float = -80.0
    PREPROCESS_THRESHOLD: int = 110

    # Pipeline Settings
    PIPELINE_MODE: str = "fast"  # fast | thorough

    # Local OCR (Tesseract) Settings
    TESSERACT_CMD: Optional[str] = None  # Use PATH lookup when unset
    TESSERACT_LANG: str = "kor+eng"
    TESSERACT_FALLBACK_LANG: str = "eng"
    TESSERACT_PSM: int = 11  # Sparse text, best for receipts
    TESSERACT_DPI: int = 300
    TESSERACT_THOROUGH_PSMS: List[int] = [11, 6, 7]
    TESSERACT_EARLY_ACCEPT_CONFIDENCE: float = 76.0

    # Cloud OCR (Google Cloud Vision) Settings
    GOOGLE_VISION_CREDENTIALS_PATH: str = "./config/google-vision-key.json"
    GOOGLE_VISION_TIMEOUT_SECONDS: float = 15.0

    # Cloud OCR Quota Settings
    OCR_MONTHLY_QUOTA: int = 1000  # Maximum cloud OCR calls per calendar month
    QUOTA_BACKEND: str = "remote"  # remote | memory

    # Remote Collaborators
    REMOTE_TIMEOUT_SECONDS: float = 10.0
    DB_PROXY_URL: str = ""
    DB_PROXY_DB_KEY: str = ""
    GOOGLE_VISION_LOG_TABLE: str = "GOOGLE_VISION_LOG"
    VERIFY_TUID_URL: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./logs/app.log"
    LOG_ROTATION: str = "10 MB"
    LOG_RETENTION: str = "7 days"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()


def ensure_directories():
    """Create all required directories if they don't exist."""
    directories = [
        settings.STORAGE_SCRATCH,
        settings.STORAGE_UPLOADS,
        Path(settings.LOG_FILE).parent,
    ]

    for directory in directories:
        Path(directory).mkdir(parents=True, exist_ok=True)


# Initialize directories on import
ensure_directories()
