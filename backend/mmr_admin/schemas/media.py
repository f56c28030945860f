"""Media schemas — records from the per-server uploads usage report."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from mmr_admin.utils.timestamps import from_epoch_ms
from mmr_admin.utils.urls import parse_mxc


class UploadRecord(BaseModel):
    """One entry of ``usage/{server}/uploads``, keyed by mxc URI upstream."""
    size_bytes: int = 0
    uploaded_by: str = ""
    datastore_id: str = ""
    datastore_location: str = ""
    sha256_hash: str = ""
    quarantined: bool = False
    upload_name: str = ""
    content_type: str = "application/octet-stream"
    created_ts: int = 0


class MediaDescriptor(BaseModel):
    """A stored media item."""
    media_id: str
    server_name: str
    upload_name: str = ""
    content_type: str = "application/octet-stream"
    size_bytes: int = Field(default=0, ge=0)
    upload_date: datetime
    user_id: str = ""
    quarantined: bool = False
    datastore_id: str = ""
    location: str = ""
    sha256_hash: str = ""

    @property
    def mxc_uri(self) -> str:
        return f"mxc://{self.server_name}/{self.media_id}"

    @classmethod
    def from_upload(cls, mxc_uri: str, record: UploadRecord) -> "MediaDescriptor":
        server_name, media_id = parse_mxc(mxc_uri)
        return cls(
            media_id=media_id,
            server_name=server_name,
            upload_name=record.upload_name,
            content_type=record.content_type or "application/octet-stream",
            size_bytes=max(record.size_bytes, 0),
            upload_date=from_epoch_ms(record.created_ts),
            user_id=record.uploaded_by,
            quarantined=record.quarantined,
            datastore_id=record.datastore_id,
            location=record.datastore_location,
            sha256_hash=record.sha256_hash,
        )


class MediaOrder(str, Enum):
    UPLOAD_DATE = "upload_date"
    SIZE_BYTES = "size_bytes"
    CONTENT_TYPE = "content_type"


class MediaPage(BaseModel):
    """One page of a filtered media listing; ``total`` counts every match."""
    media: list[MediaDescriptor] = []
    total: int = 0
    offset: int = 0
    limit: int | None = None

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.media) < self.total


class MediaQuery(BaseModel):
    """Filter, order and page applied to the uploads report.

    The backend has no search endpoint, so every field is evaluated locally.
    ``content_type`` is a case-insensitive prefix (``image/`` selects every
    image), ``search`` a case-insensitive substring of the upload name,
    content type or uploader. ``after`` is inclusive, ``before`` exclusive.
    """
    user_id: str | None = None
    server_name: str | None = None
    content_type: str | None = None
    search: str | None = None
    before: datetime | None = None
    after: datetime | None = None
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)
    order_by: MediaOrder = MediaOrder.UPLOAD_DATE
    order_direction: Literal["asc", "desc"] = "desc"

    @field_validator("before", "after")
    @classmethod
    def _assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def matches(self, media: MediaDescriptor) -> bool:
        if self.user_id and media.user_id != self.user_id:
            return False
        if self.server_name and media.server_name != self.server_name:
            return False
        if self.content_type and not media.content_type.lower().startswith(self.content_type.lower()):
            return False
        if self.before is not None and media.upload_date >= self.before:
            return False
        if self.after is not None and media.upload_date < self.after:
            return False
        if self.search:
            needle = self.search.lower()
            fields = (media.upload_name, media.content_type, media.user_id)
            if not any(needle in f.lower() for f in fields):
                return False
        return True

    def apply(self, media: Iterable[MediaDescriptor]) -> MediaPage:
        matched = [m for m in media if self.matches(m)]
        matched.sort(
            key=lambda m: getattr(m, self.order_by.value),
            reverse=self.order_direction == "desc",
        )
        end = None if self.limit is None else self.offset + self.limit
        return MediaPage(
            media=matched[self.offset:end],
            total=len(matched),
            offset=self.offset,
            limit=self.limit,
        )
