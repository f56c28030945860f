"""Purge scopes and purge/quarantine results."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class RemoteBefore(BaseModel):
    """Cached remote media last accessed before ``before_ts``."""
    kind: Literal["remote-before"] = "remote-before"
    before_ts: int


class Quarantined(BaseModel):
    kind: Literal["quarantined"] = "quarantined"


class StaleBefore(BaseModel):
    """Media not accessed since ``before_ts``; local uploads only with ``include_local``."""
    kind: Literal["stale-before"] = "stale-before"
    before_ts: int
    include_local: bool = False


class ByUser(BaseModel):
    kind: Literal["by-user"] = "by-user"
    user_id: str
    before_ts: int


class ByRoom(BaseModel):
    kind: Literal["by-room"] = "by-room"
    room_id: str
    before_ts: int


class ByServer(BaseModel):
    kind: Literal["by-server"] = "by-server"
    server_name: str
    before_ts: int


PurgeScope = Annotated[
    Union[RemoteBefore, Quarantined, StaleBefore, ByUser, ByRoom, ByServer],
    Field(discriminator="kind"),
]


class PurgeResult(BaseModel):
    purged: bool = False
    affected: list[str] = []

    @property
    def count(self) -> int:
        return len(self.affected)


class QuarantineResult(BaseModel):
    num_quarantined: int = 0
