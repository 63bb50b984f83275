"""UTC-focused helpers for timestamps and run metadata."""

from __future__ import annotations

from datetime import datetime, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


def as_utc(value: datetime) -> datetime:
    # Naive drive-test timestamps are recorded in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_nanoseconds(value: datetime) -> int:
    delta = as_utc(value) - EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000
