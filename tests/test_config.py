"""Tests for environment-driven settings."""

import pytest

from clauseguard.config import Settings, load_settings

ENV_KEYS = [
    "GOOGLE_API_KEY", "GEMINI_API_KEY", "DATABASE_URL", "LOG_LEVEL",
    "MAX_FILE_SIZE_MB", "CORS_ORIGINS", "ANALYSIS_WORKERS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also undoes anything load_dotenv writes
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_defaults(tmp_path):
    settings = load_settings(env_file=str(tmp_path / "missing.env"))

    assert settings.google_api_key is None
    assert settings.db_path == "./clauseguard.db"
    assert settings.max_file_size_mb == 10
    assert settings.min_text_length == 50
    assert settings.cors_origins == ["http://localhost:3000", "http://localhost:8000"]


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("GEMINI_API_KEY", "fallback-key")
    monkeypatch.setenv("DATABASE_URL", "sqlite:////var/lib/clauseguard/data.db")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CORS_ORIGINS", "https://app.example.com, ,https://admin.example.com")

    settings = load_settings(env_file=str(tmp_path / "missing.env"))

    assert settings.google_api_key == "fallback-key"
    assert settings.db_path == "/var/lib/clauseguard/data.db"
    assert settings.log_level == "DEBUG"
    assert settings.cors_origins == ["https://app.example.com", "https://admin.example.com"]


def test_google_key_preferred_over_gemini_key(monkeypatch, tmp_path):
    monkeypatch.setenv("GOOGLE_API_KEY", "primary")
    monkeypatch.setenv("GEMINI_API_KEY", "fallback")

    assert load_settings(env_file=str(tmp_path / "missing.env")).google_api_key == "primary"


def test_dotenv_file_is_loaded(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("MAX_FILE_SIZE_MB=25\nANALYSIS_WORKERS=8\n")

    settings = load_settings(env_file=str(env_file))

    assert settings.max_file_size_mb == 25
    assert settings.analysis_workers == 8


def test_settings_build_without_arguments():
    settings = Settings()

    assert settings.cors_origins == ["http://localhost:3000", "http://localhost:8000"]
    assert settings.max_file_size_mb == 10
    assert settings.model_name == "gemini-2.5-flash-lite"
    # each instance gets its own list
    assert Settings().cors_origins is not settings.cors_origins
