"""Background task schemas."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel

from mmr_admin.utils.timestamps import from_epoch_ms, now_ms


class TaskStatus(str, Enum):
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"


class BackgroundTask(BaseModel):
    """Snapshot of a server-side task. ``end_ts == 0`` means not finished."""
    task_id: int
    task_name: str
    params: dict[str, Any] = {}
    start_ts: int
    end_ts: int = 0
    is_finished: bool = False
    error_message: str = ""

    @property
    def is_running(self) -> bool:
        return not self.is_finished

    @property
    def has_error(self) -> bool:
        return bool(self.error_message)

    @property
    def status(self) -> TaskStatus:
        # An error is orthogonal to completion; show it first.
        if self.has_error:
            return TaskStatus.FAILED
        if self.is_finished:
            return TaskStatus.FINISHED
        return TaskStatus.RUNNING

    def duration(self, now: int | None = None) -> timedelta:
        """Elapsed time. Running tasks are measured against ``now`` on every call."""
        end = self.end_ts if self.end_ts else (now if now is not None else now_ms())
        return timedelta(milliseconds=max(end - self.start_ts, 0))

    def format_duration(self, now: int | None = None) -> str:
        seconds = int(self.duration(now).total_seconds())
        if self.end_ts == 0:
            return f"{seconds}s (running)"
        return f"{seconds}s"


def format_timestamp(ts: int) -> str:
    if ts == 0:
        return "Not finished"
    return from_epoch_ms(ts).strftime("%Y-%m-%d %H:%M:%S UTC")
