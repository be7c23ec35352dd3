"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from .env or environment variables."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Backend REST API
    api_base_url: str = "http://localhost:5000"
    api_timeout_seconds: float = 30.0

    # Autosave
    autosave_debounce_seconds: float = 2.0
    autosave_retry_seconds: float = 0.5

    # Validation: "strict" for real step rules, "permissive" to click through every step
    validation_mode: str = "strict"

    # Crash-recovery cache
    data_dir: str = "./data"
    draft_cache_key: str = "contractWizardDraft"

    # Application
    log_level: str = "INFO"

    @property
    def data_path(self) -> Path:
        p = Path(self.data_dir)
        p.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def cache_path(self) -> Path:
        p = self.data_path / "cache"
        p.mkdir(parents=True, exist_ok=True)
        return p


def get_settings() -> Settings:
    return Settings()
