"""Epoch-millisecond helpers — the backend speaks milliseconds everywhere."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def days_ago_ms(days: int) -> int:
    """Timestamp for ``days`` ago; the purge form offers 30 days as a preset."""
    return to_epoch_ms(datetime.now(timezone.utc) - timedelta(days=days))


def parse_before(value: str) -> int:
    """Parse a CLI ``--before`` value: epoch ms, ISO-8601 datetime, or ``<N>d``."""
    value = value.strip()
    if value.endswith("d") and value[:-1].isdigit():
        return days_ago_ms(int(value[:-1]))
    if value.isdigit():
        return int(value)
    return to_epoch_ms(datetime.fromisoformat(value))
