"""Session wiring — an explicitly owned client instead of a module singleton."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from mmr_admin.config import Settings
from mmr_admin.exceptions import AdapterError
from mmr_admin.schemas.connection import ConnectionConfig
from mmr_admin.services.config_resolver import ConfigResolver
from mmr_admin.services.credential_validator import (
    CredentialValidator,
    ValidationResult,
    ValidationState,
)
from mmr_admin.services.media_repo import MediaRepoClient
from mmr_admin.services.task_monitor import TaskMonitor

logger = logging.getLogger(__name__)


class ValidationFailedError(AdapterError):
    """The handshake failed; ``result`` holds the stage and captured error."""

    def __init__(self, result: ValidationResult):
        self.result = result
        if result.stage == ValidationState.VALIDATING_IDENTITY:
            stage = "Identity"
        else:
            stage = "Admin capability"
        super().__init__(f"{stage} check failed: {result.reason or 'unknown error'}")


@dataclass(frozen=True)
class AdminSession:
    """A validated config and the client built for it. Reconfiguring makes a new one."""
    config: ConnectionConfig
    client: MediaRepoClient
    user_id: str | None = None

    def task_monitor(self, poll_interval: int | None = None) -> TaskMonitor:
        """A monitor over this session's client, polling at the client's configured interval."""
        interval = poll_interval or self.client.settings.task_poll_interval_seconds
        return TaskMonitor(self.client, poll_interval=interval)


async def open_session(
    resolver: ConfigResolver,
    validator: CredentialValidator,
    *,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AdminSession:
    """Resolve the persisted config, validate it, and build a client.

    Raises IncompleteConfigurationError or ValidationFailedError.
    """
    config = resolver.resolve_or_raise()
    return await _validated_session(config, validator, settings=settings, transport=transport)


async def configure(
    resolver: ConfigResolver,
    validator: CredentialValidator,
    base_url: str,
    credential: str,
    *,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AdminSession:
    """Validate a new pair and persist it only if both stages pass."""
    config = ConnectionConfig(base_url=base_url, credential=credential)
    session = await _validated_session(config, validator, settings=settings, transport=transport)
    resolver.save(config)
    return session


async def _validated_session(
    config: ConnectionConfig,
    validator: CredentialValidator,
    *,
    settings: Settings | None,
    transport: httpx.AsyncBaseTransport | None,
) -> AdminSession:
    result = await validator.validate(config.base_url, config.credential)
    if not result.ok:
        raise ValidationFailedError(result)
    client = MediaRepoClient(config, settings=settings, transport=transport)
    logger.info("Session opened for %s as %s", config.base_url, result.user_id)
    return AdminSession(config=config, client=client, user_id=result.user_id)
