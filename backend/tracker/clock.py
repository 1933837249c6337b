from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta, timezone


def _utc_now() -> datetime:
    return datetime.now(UTC)


class FixedOffsetClock:
    """Calendar-day source anchored to a single fixed UTC offset, independent of server locale."""

    def __init__(
        self,
        utc_offset_hours: int,
        *,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._tz = timezone(timedelta(hours=utc_offset_hours))
        self._now = now

    @property
    def tz(self) -> timezone:
        return self._tz

    def now(self) -> datetime:
        current = self._now()
        if current.tzinfo is None:
            current = current.replace(tzinfo=UTC)
        return current.astimezone(self._tz)

    def today(self) -> date:
        return self.now().date()
