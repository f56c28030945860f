"""Command-line runner for the admin core.

Usage:
    python -m mmr_admin check
    python -m mmr_admin configure https://example.org <token>
    python -m mmr_admin stats
    python -m mmr_admin media --type image/ --limit 20 --offset 40
    python -m mmr_admin tasks --unfinished
    python -m mmr_admin purge remote --before 30d

Exit codes: 0 ok, 1 backend/transport error, 2 incomplete configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from mmr_admin import __version__
from mmr_admin.config import get_settings
from mmr_admin.exceptions import (
    AdapterError,
    IncompleteConfigurationError,
    UnsupportedOperationError,
    capture,
)
from mmr_admin.schemas.media import MediaOrder, MediaQuery
from mmr_admin.schemas.purge import (
    ByRoom,
    ByServer,
    ByUser,
    Quarantined,
    RemoteBefore,
    StaleBefore,
)
from mmr_admin.schemas.tasks import format_timestamp
from mmr_admin.services.config_resolver import ConfigResolver
from mmr_admin.services.credential_validator import CredentialValidator
from mmr_admin.services.session import AdminSession, configure, open_session
from mmr_admin.utils.timestamps import from_epoch_ms, now_ms, parse_before

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INCOMPLETE = 2


def _setup_logging(verbose: bool = False) -> None:
    settings = get_settings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for noisy in ("httpx", "httpcore", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if value < 1024 or unit == "TB":
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{size} B"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mmr-admin", description="Media repository admin console")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check", help="validate the persisted configuration")

    p = sub.add_parser("configure", help="validate and save a homeserver URL and token")
    p.add_argument("url")
    p.add_argument("token")

    sub.add_parser("stats", help="server usage and synthesized health")
    sub.add_parser("datastores", help="list datastores with size estimates")

    p = sub.add_parser("media", help="list uploads of the configured server")
    p.add_argument("--user", help="only uploads by this user id")
    p.add_argument("--type", dest="content_type", help="content type prefix, e.g. image/")
    p.add_argument("--search", help="substring of name, content type or uploader")
    p.add_argument("--before", help="uploaded before: epoch ms, ISO datetime or <N>d")
    p.add_argument("--after", help="uploaded at or after: epoch ms, ISO datetime or <N>d")
    p.add_argument(
        "--order-by", choices=[o.value for o in MediaOrder], default=MediaOrder.UPLOAD_DATE.value
    )
    p.add_argument("--asc", action="store_true", help="ascending order (default: descending)")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--offset", type=int, default=0)

    p = sub.add_parser("tasks", help="background tasks")
    p.add_argument("--unfinished", action="store_true")
    p.add_argument("--task", type=int, help="show a single task")

    p = sub.add_parser("purge", help="purge media by scope")
    p.add_argument("scope", choices=["remote", "quarantined", "old", "user", "room", "server"])
    p.add_argument("target", nargs="?", help="user id, room id or server name")
    p.add_argument("--before", help="epoch ms, ISO datetime or <N>d (default: now)")
    p.add_argument("--include-local", action="store_true")

    sub.add_parser("cache-clear", help="clear the media cache")
    return parser


def _media_query_from_args(args: argparse.Namespace) -> MediaQuery:
    return MediaQuery(
        user_id=args.user,
        content_type=args.content_type,
        search=args.search,
        before=from_epoch_ms(parse_before(args.before)) if args.before else None,
        after=from_epoch_ms(parse_before(args.after)) if args.after else None,
        order_by=MediaOrder(args.order_by),
        order_direction="asc" if args.asc else "desc",
        limit=args.limit,
        offset=args.offset,
    )


def _scope_from_args(args: argparse.Namespace):
    before_ts = parse_before(args.before) if args.before else now_ms()
    if args.scope == "remote":
        return RemoteBefore(before_ts=before_ts)
    if args.scope == "quarantined":
        return Quarantined()
    if args.scope == "old":
        return StaleBefore(before_ts=before_ts, include_local=args.include_local)
    if not args.target:
        raise SystemExit(f"purge {args.scope} needs a target")
    if args.scope == "user":
        return ByUser(user_id=args.target, before_ts=before_ts)
    if args.scope == "room":
        return ByRoom(room_id=args.target, before_ts=before_ts)
    return ByServer(server_name=args.target, before_ts=before_ts)


async def _run(args: argparse.Namespace) -> int:
    resolver = ConfigResolver()
    validator = CredentialValidator()

    if args.command == "configure":
        session = await configure(resolver, validator, args.url, args.token)
        print(f"Saved. Authenticated as {session.user_id}")
        return EXIT_OK

    session = await open_session(resolver, validator)
    if args.command == "check":
        print(f"OK: {session.config.base_url} as {session.user_id}")
        return EXIT_OK
    return await _dispatch(session, args)


async def _dispatch(session: AdminSession, args: argparse.Namespace) -> int:
    client = session.client

    if args.command == "stats":
        stats, health = await asyncio.gather(
            capture(client.get_server_stats()), capture(client.get_server_health())
        )
        if stats.ok:
            s = stats.unwrap()
            print(f"{s.server_name}: {s.raw_counts.media} media, {_format_bytes(s.total_bytes)}")
        else:
            print(f"Stats unavailable: {stats.error.message}")
        h = health.unwrap()
        print(f"Healthy: {h.healthy}  datastores: {len(h.datastores)}")
        return EXIT_OK if stats.ok else EXIT_ERROR

    if args.command == "datastores":
        datastores = await client.list_datastores()
        estimates = await asyncio.gather(
            *(capture(client.get_datastore_size_estimate(ds.id)) for ds in datastores)
        )
        for ds, estimate in zip(datastores, estimates):
            size = _format_bytes(estimate.value.total_bytes) if estimate.ok else "n/a"
            print(f"{ds.id}  {ds.kind.value:<12} {ds.uri}  {size}")
        return EXIT_OK

    if args.command == "media":
        page = await client.search_media(_media_query_from_args(args))
        for m in page.media:
            flag = " [quarantined]" if m.quarantined else ""
            print(f"{m.mxc_uri}  {m.content_type}  {_format_bytes(m.size_bytes)}  {m.user_id}{flag}")
        first = page.offset + 1 if page.media else page.offset
        print(f"Showing {first}-{page.offset + len(page.media)} of {page.total}")
        return EXIT_OK

    if args.command == "tasks":
        monitor = session.task_monitor()
        if args.task is not None:
            detail = await monitor.get_detail(args.task)
            tasks, error = ([detail.task] if detail.task else []), detail.error
        else:
            view = await (monitor.list_unfinished() if args.unfinished else monitor.list_all())
            tasks, error = view.tasks, view.error
        for t in tasks:
            print(
                f"#{t.task_id} {t.task_name:<18} {t.status.value:<9} "
                f"started {format_timestamp(t.start_ts)}  {t.format_duration()}"
                + (f"  error: {t.error_message}" if t.has_error else "")
            )
        if error:
            print(f"Error: {error}", file=sys.stderr)
            return EXIT_ERROR
        return EXIT_OK

    if args.command == "purge":
        result = await client.purge(_scope_from_args(args))
        print(f"Purged {result.count} item(s)")
        return EXIT_OK

    if args.command == "cache-clear":
        client.clear_cache()

    return EXIT_ERROR


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    try:
        return asyncio.run(_run(args))
    except IncompleteConfigurationError as e:
        print(f"{e.message}. Run 'mmr-admin configure URL TOKEN'.", file=sys.stderr)
        return EXIT_INCOMPLETE
    except UnsupportedOperationError as e:
        print(f"Not supported: {e.message}", file=sys.stderr)
        return EXIT_ERROR
    except AdapterError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
