"""Calendar-aligned time windows for usage counters.

Windows are fixed, not sliding: 12:00:59 and 12:01:00 fall in different
minute windows even though they are one second apart.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum


class WindowKind(str, Enum):
    MINUTE = "minute"
    DAY = "day"


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to already be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def window_stamp(kind: WindowKind | str, now: datetime) -> str:
    now = as_utc(now)
    kind = WindowKind(kind)
    if kind is WindowKind.MINUTE:
        return now.strftime("%Y-%m-%d-%H-%M")
    return now.strftime("%Y-%m-%d")


def window_key(account_id: str, kind: WindowKind | str, now: datetime) -> str:
    kind = WindowKind(kind)
    return f"rate_limit:{account_id}:{kind.value}:{window_stamp(kind, now)}"


def next_boundary(kind: WindowKind | str, now: datetime) -> datetime:
    """Start of the window after the one containing ``now``."""
    now = as_utc(now)
    kind = WindowKind(kind)
    if kind is WindowKind.MINUTE:
        return now.replace(second=0, microsecond=0) + timedelta(minutes=1)
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def day_stamp(now: datetime) -> str:
    return as_utc(now).date().isoformat()


def month_start(now: datetime) -> datetime:
    return as_utc(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
