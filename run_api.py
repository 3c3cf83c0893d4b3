"""Development launcher for the ClauseGuard API.

Host, port and reload come from API_HOST / API_PORT / API_RELOAD; everything
else is read by ``clauseguard.config.load_settings`` inside the app.
"""

import os

import uvicorn
from loguru import logger

from clauseguard.config import load_settings


if __name__ == "__main__":
    settings = load_settings()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    reload = os.getenv("API_RELOAD", "true").lower() == "true"

    logger.info(
        f"Starting ClauseGuard API on {host}:{port}",
        database=settings.db_path,
        cors_origins=settings.cors_origins,
        ai_configured=bool(settings.google_api_key)
    )

    uvicorn.run("api.main:app", host=host, port=port, reload=reload, log_level=settings.log_level.lower())
