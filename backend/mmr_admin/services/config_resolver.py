"""Connection config resolution across the structured and flat persisted shapes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from mmr_admin.config import Settings, get_settings
from mmr_admin.exceptions import IncompleteConfigurationError
from mmr_admin.schemas.connection import ConnectionConfig, StructuredConfig
from mmr_admin.utils.local_store import LocalStore

logger = logging.getLogger(__name__)

URL_KEY = "homeserver_url"
TOKEN_KEY = "access_token"


@dataclass(frozen=True)
class Incomplete:
    """Neither source yields both values. ``missing`` names what is absent."""
    missing: list[str] = field(default_factory=list)


class ConfigResolver:
    """Resolves a ConnectionConfig.

    Precedence: the structured config file when it carries both the URL and
    the token, else the flat local store when it carries both, else
    ``Incomplete``. Values are never mixed across the two shapes.
    """

    def __init__(
        self,
        config_file: str | Path | None = None,
        store: LocalStore | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self._config_file = Path(config_file or settings.config_file)
        self._store = store or LocalStore(settings.local_store_file)

    @property
    def store(self) -> LocalStore:
        return self._store

    def resolve(self) -> ConnectionConfig | Incomplete:
        structured = self._read_structured()
        url, token = structured.homeserver.url.strip(), structured.credentials.access_token.strip()
        if url and token:
            return ConnectionConfig(base_url=url, credential=token)

        flat_url = (self._store.get(URL_KEY) or "").strip()
        flat_token = (self._store.get(TOKEN_KEY) or "").strip()
        if flat_url and flat_token:
            logger.debug("Using flat persisted connection values")
            return ConnectionConfig(base_url=flat_url, credential=flat_token)

        missing = []
        if not (url or flat_url):
            missing.append(URL_KEY)
        if not (token or flat_token):
            missing.append(TOKEN_KEY)
        # Each half present, but in different shapes
        if not missing:
            missing = [URL_KEY, TOKEN_KEY]
        return Incomplete(missing=missing)

    def resolve_or_raise(self) -> ConnectionConfig:
        result = self.resolve()
        if isinstance(result, Incomplete):
            raise IncompleteConfigurationError(result.missing)
        return result

    def is_complete(self) -> bool:
        return isinstance(self.resolve(), ConnectionConfig)

    def save(self, config: ConnectionConfig) -> None:
        """Persist an operator-confirmed config in both shapes."""
        self._config_file.parent.mkdir(parents=True, exist_ok=True)
        self._config_file.write_text(
            json.dumps(config.to_structured(), indent=2), encoding="utf-8"
        )
        for key, value in config.to_flat().items():
            self._store.set(key, value)
        logger.info("Saved connection config for %s", config.base_url)

    def clear(self) -> None:
        if self._config_file.exists():
            self._config_file.unlink()
        self._store.clear()
        logger.info("Cleared persisted connection config")

    def _read_structured(self) -> StructuredConfig:
        if not self._config_file.exists():
            return StructuredConfig()
        try:
            data = json.loads(self._config_file.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("config root is not an object")
            return StructuredConfig.from_file_payload(data)
        except (json.JSONDecodeError, OSError, ValueError, ValidationError) as e:
            logger.warning("Failed to read %s, ignoring: %s", self._config_file, e)
            return StructuredConfig()
