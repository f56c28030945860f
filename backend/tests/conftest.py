"""Test fixtures — settings in tmp_path and a recording fake of the homeserver."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from mmr_admin.config import Settings
from mmr_admin.schemas.connection import ConnectionConfig
from mmr_admin.services.media_repo import MediaRepoClient

BASE_URL = "https://matrix.example.org"
TOKEN = "syt_admin_token"
ADMIN = "/_matrix/media/unstable/admin"
WHOAMI = "/_matrix/client/v3/account/whoami"

Route = httpx.Response | Callable[[httpx.Request], httpx.Response]


class FakeHomeserver:
    """Answers requests from a (method, decoded path) route table and records them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Route] = {}

    def route(
        self,
        method: str,
        path: str,
        status: int = 200,
        json: object = None,
        text: str | None = None,
    ) -> None:
        if text is not None:
            self._routes[(method, path)] = httpx.Response(status, text=text)
        else:
            self._routes[(method, path)] = httpx.Response(status, json=json if json is not None else {})

    def route_fn(self, method: str, path: str, fn: Callable[[httpx.Request], httpx.Response]) -> None:
        self._routes[(method, path)] = fn

    def fail(self, method: str, path: str) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        self._routes[(method, path)] = _raise

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"errcode": "M_UNRECOGNIZED", "error": "Unrecognized request"})
        if callable(route):
            return route(request)
        return route

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def raw_targets(self) -> list[str]:
        """Path plus query of every request, exactly as sent."""
        return [r.url.raw_path.decode("ascii") for r in self.requests]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=str(tmp_path), _env_file=None)


@pytest.fixture
def homeserver() -> FakeHomeserver:
    return FakeHomeserver()


@pytest.fixture
def config() -> ConnectionConfig:
    return ConnectionConfig(base_url=BASE_URL, credential=TOKEN)


@pytest.fixture
def client(config, settings, homeserver) -> MediaRepoClient:
    return MediaRepoClient(config, settings=settings, transport=homeserver.transport)
