"""URL helpers for the media repository path conventions."""

from __future__ import annotations

from urllib.parse import quote, urlencode, urlsplit


def encode_segment(value: str) -> str:
    """Percent-encode a single path segment (``@a:b.com`` -> ``%40a%3Ab.com``)."""
    return quote(value, safe="")


def with_query(path: str, params: dict[str, object] | None) -> str:
    """Append URL-encoded query params to ``path``, skipping None values."""
    if not params:
        return path
    pairs = {k: _query_value(v) for k, v in params.items() if v is not None}
    if not pairs:
        return path
    sep = "&" if "?" in path else "?"
    return f"{path}{sep}{urlencode(pairs)}"


def _query_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def server_name_from_url(base_url: str) -> str:
    """Server name of a homeserver URL: host plus explicit port, no userinfo.

    ``https://user@example.org:8448/path`` -> ``example.org:8448``
    """
    parts = urlsplit(base_url if "://" in base_url else f"//{base_url}")
    host = parts.hostname or ""
    if not host:
        return ""
    if ":" in host:  # IPv6 literal
        host = f"[{host}]"
    try:
        port = parts.port
    except ValueError:
        port = None
    return f"{host}:{port}" if port else host


def parse_mxc(uri: str) -> tuple[str, str]:
    """Split ``mxc://<server>/<media id>`` into (server, media id)."""
    if not uri.startswith("mxc://"):
        raise ValueError(f"Not an mxc URI: {uri!r}")
    server, _, media_id = uri[len("mxc://"):].partition("/")
    if not server or not media_id:
        raise ValueError(f"Malformed mxc URI: {uri!r}")
    return server, media_id
