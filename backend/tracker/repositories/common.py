from __future__ import annotations

from datetime import UTC, datetime


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def to_count(value: object) -> int:
    """
    Coerce a statistics counter to a non-negative int.

    The YouTube API sends counters as decimal strings and omits hidden ones;
    sqlite hands them back as ints. Anything unreadable counts as 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0
