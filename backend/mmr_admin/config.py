"""mmr-admin configuration — Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings. Connection credentials live in the persisted config, not here."""

    app_name: str = "mmr-admin"
    log_level: str = "INFO"

    # Persisted connection state (relative paths resolve inside data_dir)
    data_dir: str = "./data"
    config_file: str = "config.json"
    local_store_file: str = "local_settings.json"

    # Backend path conventions
    admin_api_prefix: str = "/_matrix/media/unstable/admin"
    client_api_prefix: str = "/_matrix/client/v3"
    media_api_prefix: str = "/_matrix/media/v3"

    # Overrides the server name parsed from the homeserver URL
    server_name: str = ""

    # Background task polling
    task_poll_interval_seconds: int = 10

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="MMR_ADMIN_",
        extra="ignore",
    )

    @field_validator("admin_api_prefix", "client_api_prefix", "media_api_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        return "/" + value.strip("/")

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Make data_dir absolute and anchor the persisted files inside it."""
        base = Path(__file__).resolve().parent.parent  # backend/
        data_dir = Path(self.data_dir)
        if not data_dir.is_absolute():
            data_dir = base / data_dir
        self.data_dir = str(data_dir)
        for field in ("config_file", "local_store_file"):
            val = Path(getattr(self, field))
            if not val.is_absolute():
                setattr(self, field, str(data_dir / val))
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
