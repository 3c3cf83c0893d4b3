"""Runtime configuration.

Settings are read once at process start (``.env`` + environment) into a frozen
struct and handed to the components that need them.
"""

import os
from typing import List, Optional

import msgspec
from dotenv import load_dotenv
from msgspec import Struct


class Settings(Struct, kw_only=True, frozen=True):
    """Process-wide configuration."""
    google_api_key: Optional[str] = None
    model_name: str = "gemini-2.5-flash-lite"
    vision_model_name: str = "gemini-2.5-flash-lite"
    db_path: str = "clauseguard.db"
    log_dir: str = "logs"
    log_level: str = "INFO"
    max_file_size_mb: int = 10
    min_text_length: int = 50
    max_prompt_chars: int = 8000
    analysis_workers: int = 4
    analysis_queue_limit: int = 32
    cors_origins: List[str] = msgspec.field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:8000"]
    )


def _db_path_from_url(url: str) -> str:
    # Extract file path from SQLite URL
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "", 1)
    return url


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build Settings from the environment, loading ``.env`` first.

    Args:
        env_file: Optional explicit dotenv path

    Returns:
        Frozen Settings instance
    """
    load_dotenv(env_file)

    cors = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000")

    return Settings(
        google_api_key=os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"),
        model_name=os.getenv("GEMINI_MODEL", "gemini-2.5-flash-lite"),
        vision_model_name=os.getenv("GEMINI_VISION_MODEL", "gemini-2.5-flash-lite"),
        db_path=_db_path_from_url(os.getenv("DATABASE_URL", "sqlite:///./clauseguard.db")),
        log_dir=os.getenv("LOG_DIR", "logs"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", "10")),
        min_text_length=int(os.getenv("MIN_TEXT_LENGTH", "50")),
        max_prompt_chars=int(os.getenv("MAX_PROMPT_CHARS", "8000")),
        analysis_workers=int(os.getenv("ANALYSIS_WORKERS", "4")),
        analysis_queue_limit=int(os.getenv("ANALYSIS_QUEUE_LIMIT", "32")),
        cors_origins=[origin.strip() for origin in cors.split(",") if origin.strip()],
    )
