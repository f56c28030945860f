"""Two-stage credential handshake: origin identity, then admin capability."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import httpx
from pydantic import ValidationError

from mmr_admin.config import Settings, get_settings
from mmr_admin.exceptions import (
    AdapterError,
    ProtocolError,
    TransportError,
    error_from_response,
)
from mmr_admin.schemas.connection import ConnectionConfig
from mmr_admin.schemas.identity import WhoAmI
from mmr_admin.services.media_repo import MediaRepoClient

logger = logging.getLogger(__name__)


class ValidationState(str, Enum):
    UNVALIDATED = "unvalidated"
    VALIDATING_IDENTITY = "validating_identity"
    VALIDATING_CAPABILITY = "validating_capability"
    VALIDATED = "validated"
    FAILED = "failed"


VALID_TRANSITIONS: dict[ValidationState, set[ValidationState]] = {
    ValidationState.UNVALIDATED: {ValidationState.VALIDATING_IDENTITY},
    ValidationState.VALIDATING_IDENTITY: {
        ValidationState.VALIDATING_CAPABILITY,
        ValidationState.FAILED,
    },
    ValidationState.VALIDATING_CAPABILITY: {
        ValidationState.VALIDATED,
        ValidationState.FAILED,
    },
    ValidationState.VALIDATED: set(),
    ValidationState.FAILED: set(),
}


@dataclass(frozen=True)
class IdentityCheck:
    ok: bool
    identity: WhoAmI | None = None
    error: AdapterError | None = None


@dataclass(frozen=True)
class CapabilityCheck:
    ok: bool
    datastore_count: int = 0
    error: AdapterError | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Final outcome of a handshake. ``stage`` is the last stage entered."""

    state: ValidationState
    stage: ValidationState
    user_id: str | None = None
    error: AdapterError | None = None

    @property
    def ok(self) -> bool:
        return self.state == ValidationState.VALIDATED

    @property
    def reason(self) -> str | None:
        return self.error.message if self.error else None


class Handshake:
    """State of one validation attempt. Terminal once validated or failed."""

    def __init__(self) -> None:
        self._state = ValidationState.UNVALIDATED

    @property
    def state(self) -> ValidationState:
        return self._state

    def transition(self, new_state: ValidationState) -> bool:
        """Move to ``new_state``. Returns False (and stays put) if not allowed."""
        valid = VALID_TRANSITIONS.get(self._state, set())
        if new_state not in valid:
            logger.warning(
                "Invalid validation transition: %s -> %s (valid: %s)",
                self._state, new_state, valid,
            )
            return False
        logger.debug("Validation state: %s -> %s", self._state, new_state)
        self._state = new_state
        return True


class CredentialValidator:
    """Checks a homeserver URL + token pair before the console may use it.

    The validator only reports; callers must not build a client for a pair
    whose result is not ``ok``. No retries: every stage is a single request.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings or get_settings()
        self._transport = transport

    async def validate_identity(self, origin: str, credential: str) -> IdentityCheck:
        """Stage 1: ``whoami`` against the origin with a bearer header."""
        url = f"{origin.rstrip('/')}{self._settings.client_api_prefix}/account/whoami"
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                resp = await client.get(url, headers={"Authorization": f"Bearer {credential}"})
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            logger.warning("Identity check could not reach %s: %s", origin, e)
            return IdentityCheck(ok=False, error=TransportError(f"Could not reach {origin}: {e}"))

        if not resp.is_success:
            error = error_from_response(resp)
            logger.warning("Identity check rejected (%d): %s", resp.status_code, error.message)
            return IdentityCheck(ok=False, error=error)

        try:
            identity = WhoAmI.model_validate(resp.json())
        except (ValueError, ValidationError):
            return IdentityCheck(
                ok=False,
                error=ProtocolError("Unparseable whoami response", resp.status_code),
            )
        logger.info("Token belongs to %s", identity.user_id)
        return IdentityCheck(ok=True, identity=identity)

    async def validate_capability(self, base_url: str, credential: str) -> CapabilityCheck:
        """Stage 2: list datastores, the cheapest call that needs admin rights."""
        try:
            client = MediaRepoClient(
                ConnectionConfig(base_url=base_url, credential=credential),
                settings=self._settings,
                transport=self._transport,
            )
            datastores = await client.list_datastores()
        except AdapterError as e:
            logger.warning("Admin capability check failed: %s", e.message)
            return CapabilityCheck(ok=False, error=e)
        return CapabilityCheck(ok=True, datastore_count=len(datastores))

    async def validate(self, origin: str, credential: str) -> ValidationResult:
        """Run both stages in order; stage 2 only after stage 1 succeeded."""
        handshake = Handshake()

        handshake.transition(ValidationState.VALIDATING_IDENTITY)
        identity = await self.validate_identity(origin, credential)
        if not identity.ok:
            handshake.transition(ValidationState.FAILED)
            return ValidationResult(
                state=handshake.state,
                stage=ValidationState.VALIDATING_IDENTITY,
                error=identity.error,
            )

        handshake.transition(ValidationState.VALIDATING_CAPABILITY)
        capability = await self.validate_capability(origin, credential)
        user_id = identity.identity.user_id if identity.identity else None
        if not capability.ok:
            handshake.transition(ValidationState.FAILED)
            return ValidationResult(
                state=handshake.state,
                stage=ValidationState.VALIDATING_CAPABILITY,
                user_id=user_id,
                error=capability.error,
            )

        handshake.transition(ValidationState.VALIDATED)
        logger.info("Credentials validated for %s (%d datastores)", user_id, capability.datastore_count)
        return ValidationResult(
            state=handshake.state,
            stage=ValidationState.VALIDATING_CAPABILITY,
            user_id=user_id,
        )
