"""Usage and health schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class UsageTotals(BaseModel):
    total: int = 0
    media: int = 0
    thumbnails: int = 0


class ServerStats(BaseModel):
    """Aggregate usage for one server name."""
    server_name: str = ""
    raw_bytes: UsageTotals = Field(default_factory=UsageTotals)
    raw_counts: UsageTotals = Field(default_factory=UsageTotals)

    @property
    def total_bytes(self) -> int:
        return self.raw_bytes.total

    @property
    def total_media(self) -> int:
        return self.raw_counts.media


class UserUsage(BaseModel):
    """Usage of a single account."""
    user_id: str
    raw_bytes: UsageTotals = Field(default_factory=UsageTotals)
    raw_counts: UsageTotals = Field(default_factory=UsageTotals)
    uploaded: list[str] = []

    @property
    def media_count(self) -> int:
        return self.raw_counts.total

    @property
    def total_size_bytes(self) -> int:
        return self.raw_bytes.total


class DatastoreHealth(BaseModel):
    healthy: bool
    last_check: datetime


class ServerHealth(BaseModel):
    """Synthesized health. Uptime and version are not exposed by the backend."""
    healthy: bool
    uptime_seconds: int = 0
    version: str | None = None
    checked_at: datetime
    datastores: dict[str, DatastoreHealth] = {}
    error: str | None = None
