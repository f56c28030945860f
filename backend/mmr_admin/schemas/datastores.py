"""Datastore schemas."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class DatastoreKind(str, Enum):
    FILE = "file"
    OBJECT_STORE = "object-store"
    OTHER = "other"


class SizeEstimate(BaseModel):
    """Aggregate counts and bytes, split between primary media and thumbnails."""
    thumbnails_affected: int = 0
    thumbnail_hashes_affected: int = 0
    thumbnail_bytes: int = 0
    media_affected: int = 0
    media_hashes_affected: int = 0
    media_bytes: int = 0
    total_hashes_affected: int = 0
    total_bytes: int = 0


class DatastoreRecord(BaseModel):
    """Value of the ``{id: {type, uri}}`` datastore listing."""
    type: str = ""
    uri: str = ""


class DatastoreDescriptor(BaseModel):
    """A configured storage backend."""
    id: str
    type: str
    uri: str = ""
    size_estimate: SizeEstimate | None = None

    @property
    def kind(self) -> DatastoreKind:
        if self.type == "file":
            return DatastoreKind.FILE
        if self.type in ("s3", "object-store"):
            return DatastoreKind.OBJECT_STORE
        return DatastoreKind.OTHER


class TransferStarted(BaseModel):
    """A datastore-to-datastore transfer was queued as a background task."""
    task_id: int
