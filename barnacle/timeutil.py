"""Timestamp helpers shared by the store, the rules and the auditor."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """Render *moment* as a UTC ISO-8601 string with microsecond precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp or date.

    Naive values are taken as UTC.  Returns ``None`` for empty or
    unparsable input instead of raising, so callers can treat a garbled
    date the same as a missing one.
    """
    if not value or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def advance_timestamp(previous: str | None, now: datetime) -> str:
    """Return an ISO timestamp for *now* that sorts strictly after *previous*."""
    last = parse_timestamp(previous)
    if last is not None and now <= last:
        now = last + timedelta(microseconds=1)
    return isoformat(now)
