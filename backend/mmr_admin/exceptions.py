"""Adapter errors and explicit result values.

Every failure surfaced by the core is an ``AdapterError`` carrying a
human-readable ``message``. Presentation code branches on the subclass:
``UnsupportedOperationError`` is permanent (no retry affordance), the others
may be transient.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

import httpx
from pydantic import ValidationError

from mmr_admin.schemas.errors import ErrorBody

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AdapterError(Exception):
    """Base error for every operation of the core."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TransportError(AdapterError):
    """No response was received (network, DNS, TLS or malformed URL)."""


class ProtocolError(AdapterError):
    """A response arrived but was not a usable 2xx payload."""

    def __init__(
        self,
        message: str,
        status_code: int,
        error: str | None = None,
        code: int | str | None = None,
    ):
        self.status_code = status_code
        self.error = error
        self.code = code
        super().__init__(message)


class UnsupportedOperationError(AdapterError):
    """The backend has no equivalent for this operation."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} is not supported by the media repository admin API")


class IncompleteConfigurationError(AdapterError):
    """Neither persisted config shape yields both a homeserver URL and a token."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Configuration incomplete, missing: {', '.join(self.missing)}")


def status_line(response: httpx.Response) -> str:
    return f"HTTP {response.status_code}: {response.reason_phrase}"


def error_from_response(response: httpx.Response) -> ProtocolError:
    """Normalize a non-2xx response into a ProtocolError.

    Structured bodies ``{error, message, code}`` (and Matrix ``{errcode, error}``)
    keep the backend's text; anything else falls back to the status line.
    """
    try:
        body = ErrorBody.model_validate(response.json())
    except (ValueError, ValidationError):
        return ProtocolError(status_line(response), response.status_code)

    message = body.message or body.error or status_line(response)
    return ProtocolError(
        message,
        response.status_code,
        error=body.error,
        code=body.code if body.code is not None else body.errcode,
    )


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an adapter call: either a value or an AdapterError."""

    value: T | None = None
    error: AdapterError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


async def capture(awaitable: Awaitable[T]) -> Result[T]:
    """Await an adapter call and fold any AdapterError into a Result."""
    try:
        return Result(value=await awaitable)
    except AdapterError as e:
        logger.debug("Captured %s: %s", type(e).__name__, e.message)
        return Result(error=e)
