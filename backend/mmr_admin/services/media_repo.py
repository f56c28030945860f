"""Media repository admin API client.

Single translator between the console's operations and the backend's admin
surface. The backend is a narrow, fixed set of usage reports and scoped
purges; operations with no equivalent raise UnsupportedOperationError before
any I/O.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, NoReturn
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from mmr_admin.config import Settings, get_settings
from mmr_admin.exceptions import (
    AdapterError,
    ProtocolError,
    TransportError,
    UnsupportedOperationError,
    error_from_response,
)
from mmr_admin.schemas.connection import ConnectionConfig
from mmr_admin.schemas.datastores import (
    DatastoreDescriptor,
    DatastoreRecord,
    SizeEstimate,
    TransferStarted,
)
from mmr_admin.schemas.media import MediaDescriptor, MediaPage, MediaQuery, UploadRecord
from mmr_admin.schemas.purge import (
    ByRoom,
    ByServer,
    ByUser,
    PurgeResult,
    PurgeScope,
    QuarantineResult,
    Quarantined,
    RemoteBefore,
    StaleBefore,
)
from mmr_admin.schemas.tasks import BackgroundTask
from mmr_admin.schemas.usage import (
    DatastoreHealth,
    ServerHealth,
    ServerStats,
    UsageTotals,
    UserUsage,
)
from mmr_admin.utils.urls import encode_segment, server_name_from_url, with_query

logger = logging.getLogger(__name__)

_UPLOADS = TypeAdapter(dict[str, UploadRecord])
_DATASTORES = TypeAdapter(dict[str, DatastoreRecord])
_TASKS = TypeAdapter(list[BackgroundTask])


class _UserUsageRecord(BaseModel):
    raw_bytes: UsageTotals = UsageTotals()
    raw_counts: UsageTotals = UsageTotals()
    uploaded: list[str] = []


_USER_RECORDS = TypeAdapter(dict[str, _UserUsageRecord])


class MediaRepoClient:
    """Admin API client bound to one ConnectionConfig.

    Holds no queue, lock or cache: every call is a fresh round trip and
    concurrent calls are fanned out by the caller. Credentials change by
    building a new client (``with_config``), never by mutation.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._settings = settings or get_settings()
        self._transport = transport
        self._admin = self._settings.admin_api_prefix
        self._server_name = self._settings.server_name or server_name_from_url(config.base_url)
        self._server_segment = quote(self._server_name, safe=":[]")

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def server_name(self) -> str:
        return self._server_name

    def with_config(self, config: ConnectionConfig) -> MediaRepoClient:
        return MediaRepoClient(config, settings=self._settings, transport=self._transport)

    # Request primitive

    def _url(self, path: str) -> str:
        sep = "&" if "?" in path else "?"
        token = quote(self._config.credential, safe="")
        return f"{self._config.base_url}{path}{sep}access_token={token}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Issue one request; map transport failures and non-2xx responses."""
        path = with_query(path, params)
        headers = {"Content-Type": "application/json"} if json is not None else {}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                resp = await client.request(method, self._url(path), headers=headers, json=json)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransportError(f"Could not reach {self._config.base_url}: {e}") from e

        if not resp.is_success:
            error = error_from_response(resp)
            logger.warning("%s %s -> %d: %s", method, path, resp.status_code, error.message)
            raise error
        logger.debug("%s %s -> %d", method, path, resp.status_code)
        return resp

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        into: TypeAdapter | type[BaseModel] | None = None,
        what: str = "response",
    ) -> Any:
        """Send, decode JSON (an empty body reads as ``{}``) and validate ``into``."""
        resp = await self._send(method, path, params=params, json=json)
        if not resp.content:
            data: Any = {}
        else:
            try:
                data = resp.json()
            except ValueError as e:
                raise ProtocolError(
                    f"Malformed JSON response from {path}", resp.status_code
                ) from e
        if into is None:
            return data
        return self._parse(into, data, what, resp.status_code)

    @staticmethod
    def _parse(
        adapter: TypeAdapter | type[BaseModel], data: Any, what: str, status_code: int
    ) -> Any:
        try:
            if isinstance(adapter, TypeAdapter):
                return adapter.validate_python(data)
            return adapter.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(
                f"Unexpected {what} payload: {e.error_count()} invalid field(s)", status_code
            ) from e

    # Media

    async def list_media(self, query: MediaQuery | None = None) -> list[MediaDescriptor]:
        """Uploads of the configured server, newest first unless ``query`` orders otherwise."""
        page = await self.search_media(query or MediaQuery())
        return page.media

    async def search_media(self, query: MediaQuery) -> MediaPage:
        """Filter, order and page the uploads report.

        The backend only offers the uploads usage report, not a paginated
        file listing; the whole report is fetched on every call and the
        query is applied here. Records that cannot be read are skipped.
        """
        records = await self._request(
            "GET",
            f"{self._admin}/usage/{self._server_segment}/uploads",
            into=_UPLOADS,
            what="uploads",
        )
        media = []
        for mxc, record in records.items():
            try:
                media.append(MediaDescriptor.from_upload(mxc, record))
            except (ValueError, OverflowError, OSError) as e:
                logger.warning("Skipping upload %s: %s", mxc, e)
        return query.apply(media)

    async def delete_media(self, media_id: str) -> PurgeResult:
        return await self._request(
            "POST",
            f"{self._admin}/purge/media/{encode_segment(media_id)}",
            into=PurgeResult,
            what="purge",
        )

    async def quarantine_media(self, media_id: str) -> QuarantineResult:
        return await self._request(
            "POST",
            f"{self._admin}/quarantine/media/{encode_segment(media_id)}",
            into=QuarantineResult,
            what="quarantine",
        )

    def media_download_url(self, server_name: str, media_id: str) -> str:
        path = (
            f"{self._settings.media_api_prefix}/download/"
            f"{encode_segment(server_name)}/{encode_segment(media_id)}"
        )
        return self._url(path)

    async def download_media(self, server_name: str, media_id: str) -> bytes:
        resp = await self._send(
            "GET",
            f"{self._settings.media_api_prefix}/download/"
            f"{encode_segment(server_name)}/{encode_segment(media_id)}",
        )
        return resp.content

    # Usage

    async def get_user_usage(self, user_id: str) -> UserUsage:
        records = await self._request(
            "GET",
            f"{self._admin}/usage/{self._server_segment}/users",
            params={"user_id": user_id},
            into=_USER_RECORDS,
            what="user usage",
        )
        record = records.get(user_id)
        if record is None:
            return UserUsage(user_id=user_id)
        return UserUsage(user_id=user_id, **record.model_dump())

    async def get_all_users_usage(self) -> list[UserUsage]:
        records = await self._request(
            "GET",
            f"{self._admin}/usage/{self._server_segment}/users",
            into=_USER_RECORDS,
            what="user usage",
        )
        return [UserUsage(user_id=uid, **rec.model_dump()) for uid, rec in records.items()]

    async def get_server_stats(self) -> ServerStats:
        stats = await self._request(
            "GET",
            f"{self._admin}/usage/{self._server_segment}",
            into=ServerStats,
            what="server usage",
        )
        return stats.model_copy(update={"server_name": self._server_name})

    async def get_server_health(self) -> ServerHealth:
        """Synthesized health: the datastore listing succeeding means healthy.

        The backend exposes neither uptime nor version; they stay 0/None.
        """
        checked_at = datetime.now(timezone.utc)
        try:
            datastores = await self.list_datastores()
        except AdapterError as e:
            logger.warning("Health check failed: %s", e.message)
            return ServerHealth(healthy=False, checked_at=checked_at, error=e.message)
        return ServerHealth(
            healthy=True,
            checked_at=checked_at,
            datastores={
                ds.id: DatastoreHealth(healthy=True, last_check=checked_at) for ds in datastores
            },
        )

    # Datastores

    async def list_datastores(self) -> list[DatastoreDescriptor]:
        records = await self._request(
            "GET", f"{self._admin}/datastores", into=_DATASTORES, what="datastores"
        )
        return [
            DatastoreDescriptor(id=ds_id, type=rec.type, uri=rec.uri)
            for ds_id, rec in records.items()
        ]

    async def get_datastore_size_estimate(self, datastore_id: str) -> SizeEstimate:
        return await self._request(
            "GET",
            f"{self._admin}/datastores/{encode_segment(datastore_id)}/size_estimate",
            into=SizeEstimate,
            what="size estimate",
        )

    async def migrate_datastore(
        self, from_id: str, to_id: str, before_ts: int | None = None
    ) -> TransferStarted:
        result = await self._request(
            "POST",
            f"{self._admin}/datastores/{encode_segment(from_id)}/transfer_to/{encode_segment(to_id)}",
            params={"before_ts": before_ts},
            into=TransferStarted,
            what="transfer",
        )
        logger.info("Transfer %s -> %s queued as task %d", from_id, to_id, result.task_id)
        return result

    # Purges

    async def purge_remote_media(self, before_ts: int) -> PurgeResult:
        return await self.purge(RemoteBefore(before_ts=before_ts))

    async def purge_quarantined_media(self) -> PurgeResult:
        return await self.purge(Quarantined())

    async def purge_old_media(self, before_ts: int, include_local: bool = False) -> PurgeResult:
        return await self.purge(StaleBefore(before_ts=before_ts, include_local=include_local))

    async def purge_user_media(self, user_id: str, before_ts: int) -> PurgeResult:
        return await self.purge(ByUser(user_id=user_id, before_ts=before_ts))

    async def purge_room_media(self, room_id: str, before_ts: int) -> PurgeResult:
        return await self.purge(ByRoom(room_id=room_id, before_ts=before_ts))

    async def purge_server_media(self, server_name: str, before_ts: int) -> PurgeResult:
        return await self.purge(ByServer(server_name=server_name, before_ts=before_ts))

    async def purge(self, scope: PurgeScope) -> PurgeResult:
        """Run the purge endpoint for ``scope``. Timestamps pass through unchecked."""
        path = purge_path(self._admin, scope)
        result = await self._request("POST", path, into=PurgeResult, what="purge")
        logger.info("Purge %s removed %d item(s)", scope.kind, result.count)
        return result

    # Background tasks

    async def list_tasks(self) -> list[BackgroundTask]:
        return await self._request(
            "GET", f"{self._admin}/tasks/all", into=_TASKS, what="tasks"
        )

    async def list_unfinished_tasks(self) -> list[BackgroundTask]:
        return await self._request(
            "GET", f"{self._admin}/tasks/unfinished", into=_TASKS, what="tasks"
        )

    async def get_task(self, task_id: int) -> BackgroundTask:
        return await self._request(
            "GET", f"{self._admin}/tasks/{int(task_id)}", into=BackgroundTask, what="task"
        )

    # Not offered by the backend

    def unquarantine_media(self, media_id: str) -> NoReturn:
        raise UnsupportedOperationError("Unquarantining media")

    def list_quarantined_media(self) -> NoReturn:
        raise UnsupportedOperationError("Listing quarantined media")

    def get_cache_stats(self) -> NoReturn:
        raise UnsupportedOperationError("Cache statistics")

    def clear_cache(self) -> NoReturn:
        raise UnsupportedOperationError("Clearing the cache")

    def warm_cache(self, media_id: str) -> NoReturn:
        raise UnsupportedOperationError("Warming the cache")


def purge_path(admin_prefix: str, scope: PurgeScope) -> str:
    """Endpoint path (with query) for one purge scope."""
    if isinstance(scope, RemoteBefore):
        return with_query(f"{admin_prefix}/purge/remote", {"before_ts": scope.before_ts})
    if isinstance(scope, Quarantined):
        return f"{admin_prefix}/purge/quarantined"
    if isinstance(scope, StaleBefore):
        return with_query(
            f"{admin_prefix}/purge/old",
            {"before_ts": scope.before_ts, "include_local": scope.include_local},
        )
    if isinstance(scope, ByUser):
        target = f"user/{encode_segment(scope.user_id)}"
    elif isinstance(scope, ByRoom):
        target = f"room/{encode_segment(scope.room_id)}"
    elif isinstance(scope, ByServer):
        target = f"server/{encode_segment(scope.server_name)}"
    else:
        raise TypeError(f"Unknown purge scope: {scope!r}")
    return with_query(f"{admin_prefix}/purge/{target}", {"before_ts": scope.before_ts})
