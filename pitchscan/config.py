import logging
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024
GIB = 1024 * MIB


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Pitchscan Analysis API"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Gemini endpoints
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_model: str = "gemini-1.5-flash"

    http_connect_timeout_seconds: float = 10.0
    http_read_timeout_seconds: float = 300.0
    http_write_timeout_seconds: float = 300.0

    # Upload limits (Files API hard limit is 2GB)
    max_upload_bytes: int = 2 * GIB
    upload_chunk_bytes: int = 100 * MIB
    upload_tmp_dir: str | None = None

    # Readiness polling
    readiness_initial_interval_seconds: float = 5.0
    readiness_backoff_factor: float = 1.2
    readiness_max_interval_seconds: float = 30.0
    readiness_deadline_seconds: float = 600.0

    # Retry / fallback
    fallback_enabled: bool = True
    acquire_max_attempts: int = 3
    acquire_base_delay_seconds: float = 2.0

    # Detection thresholds
    frame_min_confidence: float = 0.6
    video_min_confidence: float = 0.3
    best_frame_max_samples: int = 15


settings = Settings()


def setup_logging(level: str | None = None) -> None:
    """Configure logging for the API server and CLI."""
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
