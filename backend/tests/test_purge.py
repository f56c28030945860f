"""Tests for purge scopes — endpoint mapping and identifier encoding."""

from urllib.parse import unquote

import httpx
import pytest
from pydantic import TypeAdapter

from conftest import ADMIN, TOKEN
from mmr_admin.schemas.purge import (
    ByRoom,
    ByServer,
    ByUser,
    PurgeScope,
    Quarantined,
    RemoteBefore,
    StaleBefore,
)
from mmr_admin.services.media_repo import purge_path

TS = 1_700_000_000_000
PURGED = {"purged": True, "affected": ["mxc://example.org/a", "mxc://example.org/b"]}


class TestPurgePaths:
    def test_by_user_is_percent_encoded(self):
        assert purge_path(ADMIN, ByUser(user_id="@a:b.com", before_ts=TS)) == (
            f"{ADMIN}/purge/user/%40a%3Ab.com?before_ts={TS}"
        )

    def test_by_room_is_percent_encoded(self):
        assert purge_path(ADMIN, ByRoom(room_id="!room/id:b.com", before_ts=TS)) == (
            f"{ADMIN}/purge/room/%21room%2Fid%3Ab.com?before_ts={TS}"
        )

    def test_by_server(self):
        assert purge_path(ADMIN, ByServer(server_name="b.com", before_ts=TS)) == (
            f"{ADMIN}/purge/server/b.com?before_ts={TS}"
        )

    def test_remote_before(self):
        assert purge_path(ADMIN, RemoteBefore(before_ts=TS)) == f"{ADMIN}/purge/remote?before_ts={TS}"

    def test_stale_before(self):
        assert purge_path(ADMIN, StaleBefore(before_ts=TS, include_local=True)) == (
            f"{ADMIN}/purge/old?before_ts={TS}&include_local=true"
        )
        assert purge_path(ADMIN, StaleBefore(before_ts=TS)) == (
            f"{ADMIN}/purge/old?before_ts={TS}&include_local=false"
        )

    def test_quarantined(self):
        assert purge_path(ADMIN, Quarantined()) == f"{ADMIN}/purge/quarantined"


class TestPurgeRequests:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("call,target", [
        (lambda c: c.purge_user_media("@a:b.com", TS), f"/purge/user/%40a%3Ab.com?before_ts={TS}"),
        (lambda c: c.purge_room_media("!r:b.com", TS), f"/purge/room/%21r%3Ab.com?before_ts={TS}"),
        (lambda c: c.purge_server_media("b.com", TS), f"/purge/server/b.com?before_ts={TS}"),
        (lambda c: c.purge_remote_media(TS), f"/purge/remote?before_ts={TS}"),
        (lambda c: c.purge_old_media(TS, True), f"/purge/old?before_ts={TS}&include_local=true"),
        (lambda c: c.purge_quarantined_media(), "/purge/quarantined"),
    ])
    async def test_sent_exactly(self, client, homeserver, call, target):
        homeserver.route_fn("POST", homeserver_path(target), lambda request: _purged())
        result = await call(client)

        sep = "&" if "?" in target else "?"
        assert homeserver.raw_targets() == [f"{ADMIN}{target}{sep}access_token={TOKEN}"]
        assert homeserver.last.method == "POST"
        assert result.count == 2

    @pytest.mark.asyncio
    async def test_future_timestamp_passes_through(self, client, homeserver):
        future = 4_102_444_800_000  # 2100-01-01
        homeserver.route("POST", f"{ADMIN}/purge/remote", json={"purged": True, "affected": []})
        await client.purge_remote_media(future)
        assert f"before_ts={future}" in homeserver.raw_targets()[0]

    @pytest.mark.asyncio
    async def test_purge_dispatches_parsed_scope(self, client, homeserver):
        scope = TypeAdapter(PurgeScope).validate_python(
            {"kind": "by-user", "user_id": "@a:b.com", "before_ts": TS}
        )
        assert isinstance(scope, ByUser)
        homeserver.route("POST", f"{ADMIN}/purge/user/@a:b.com", json=PURGED)
        result = await client.purge(scope)
        assert result.affected == PURGED["affected"]


def homeserver_path(target: str) -> str:
    """Decoded path the fake homeserver routes on."""
    return unquote(f"{ADMIN}{target.split('?')[0]}")


def _purged() -> httpx.Response:
    return httpx.Response(200, json=PURGED)
