"""Background task monitor — polling view model over the task endpoints."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from mmr_admin.exceptions import AdapterError
from mmr_admin.schemas.tasks import BackgroundTask

if TYPE_CHECKING:
    from mmr_admin.services.media_repo import MediaRepoClient

logger = logging.getLogger(__name__)


class TaskViewName(str, Enum):
    ALL = "all"
    UNFINISHED = "unfinished"


@dataclass(frozen=True)
class TaskView:
    """One result set. ``tasks`` keeps the last good load when a refresh fails."""
    tasks: list[BackgroundTask] = field(default_factory=list)
    loading: bool = False
    error: str | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class TaskDetail:
    task: BackgroundTask | None = None
    loading: bool = False
    error: str | None = None


class PollingHandle:
    """Stops one repeating refresh job."""

    def __init__(self, scheduler: AsyncIOScheduler, job_id: str):
        self._scheduler = scheduler
        self._job_id = job_id
        self._stopped = False

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._scheduler.get_job(self._job_id):
            self._scheduler.remove_job(self._job_id)
        logger.info("Task polling %s stopped", self._job_id)


class TaskMonitor:
    """Keeps "all", "unfinished" and "selected task" snapshots independent.

    Each fetch only ever writes its own view, so a failure in one never
    clears another. A fetch that was superseded by a newer one for the same
    view, or cancelled, leaves no trace.
    """

    def __init__(self, client: MediaRepoClient, poll_interval: int = 10):
        self._client = client
        self._poll_interval = poll_interval
        self._views: dict[TaskViewName, TaskView] = {name: TaskView() for name in TaskViewName}
        self._detail = TaskDetail()
        self._generations: dict[str, int] = {}
        self._scheduler: AsyncIOScheduler | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._handles: list[PollingHandle] = []

    @property
    def all_tasks(self) -> TaskView:
        return self._views[TaskViewName.ALL]

    @property
    def unfinished_tasks(self) -> TaskView:
        return self._views[TaskViewName.UNFINISHED]

    @property
    def selected(self) -> TaskDetail:
        return self._detail

    def view(self, name: TaskViewName) -> TaskView:
        return self._views[name]

    async def list_all(self) -> TaskView:
        return await self._load(TaskViewName.ALL, self._client.list_tasks)

    async def list_unfinished(self) -> TaskView:
        return await self._load(TaskViewName.UNFINISHED, self._client.list_unfinished_tasks)

    async def get_detail(self, task_id: int) -> TaskDetail:
        """Select ``task_id``; the previous selection is replaced, not merged."""
        gen = self._next_generation("detail")
        self._detail = TaskDetail(task=None, loading=True)
        try:
            task = await self._client.get_task(task_id)
        except AdapterError as e:
            if self._is_current("detail", gen):
                logger.warning("Failed to load task %d: %s", task_id, e.message)
                self._detail = TaskDetail(task=None, loading=False, error=e.message)
            return self._detail
        except asyncio.CancelledError:
            if self._is_current("detail", gen):
                self._detail = replace(self._detail, loading=False)
            raise
        if self._is_current("detail", gen):
            self._detail = TaskDetail(task=task, loading=False)
        return self._detail

    def clear_selection(self) -> None:
        self._next_generation("detail")
        self._detail = TaskDetail()

    async def refresh(self, views: Iterable[TaskViewName] = tuple(TaskViewName)) -> None:
        """Re-issue the given views concurrently; each result fully replaces its view."""
        loaders = {
            TaskViewName.ALL: self.list_all,
            TaskViewName.UNFINISHED: self.list_unfinished,
        }
        await asyncio.gather(*(loaders[TaskViewName(v)]() for v in views))

    def start_polling(
        self,
        interval: int | None = None,
        views: Iterable[TaskViewName] = tuple(TaskViewName),
    ) -> PollingHandle:
        """Schedule ``refresh`` every ``interval`` seconds. Needs a running event loop."""
        interval = interval or self._poll_interval
        selected = tuple(TaskViewName(v) for v in views)
        if self._scheduler is None:
            self._loop = asyncio.get_running_loop()
            self._scheduler = AsyncIOScheduler(
                job_defaults={"coalesce": True, "max_instances": 1}
            )
            self._scheduler.start()

        job_id = f"refresh_tasks_{len(self._handles) + 1}"
        self._scheduler.add_job(
            self.refresh,
            "interval",
            seconds=interval,
            kwargs={"views": selected},
            id=job_id,
            name=f"Refresh {', '.join(v.value for v in selected)} tasks",
        )
        handle = PollingHandle(self._scheduler, job_id)
        self._handles.append(handle)
        logger.info("Task polling %s started — every %ds", job_id, interval)
        return handle

    def shutdown(self) -> None:
        """Stop every polling job and the scheduler.

        Safe to call after the event loop that started polling has closed;
        the scheduler is then dropped without touching the loop.
        """
        for handle in self._handles:
            handle.stop()
        self._handles.clear()
        if self._scheduler is not None and self._scheduler.running:
            if self._loop is not None and self._loop.is_closed():
                logger.debug("Event loop closed; dropping task scheduler")
            else:
                self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._loop = None

    async def _load(
        self,
        name: TaskViewName,
        fetch: Callable[[], Awaitable[list[BackgroundTask]]],
    ) -> TaskView:
        gen = self._next_generation(name.value)
        self._views[name] = replace(self._views[name], loading=True, error=None)
        try:
            tasks = await fetch()
        except AdapterError as e:
            if self._is_current(name.value, gen):
                logger.warning("Failed to load %s tasks: %s", name.value, e.message)
                self._views[name] = replace(self._views[name], loading=False, error=e.message)
            return self._views[name]
        except asyncio.CancelledError:
            if self._is_current(name.value, gen):
                self._views[name] = replace(self._views[name], loading=False)
            raise

        if self._is_current(name.value, gen):
            self._views[name] = TaskView(
                tasks=tasks,
                loading=False,
                updated_at=datetime.now(timezone.utc),
            )
        return self._views[name]

    def _next_generation(self, key: str) -> int:
        self._generations[key] = self._generations.get(key, 0) + 1
        return self._generations[key]

    def _is_current(self, key: str, gen: int) -> bool:
        return self._generations.get(key) == gen
