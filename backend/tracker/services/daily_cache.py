from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from backend.tracker.services.stats_provider import ChannelStats


@dataclass(frozen=True)
class CacheEntry:
    day: date
    entries: tuple[ChannelStats, ...]
    requested_ids: frozenset[str]

    def covers(self, channel_ids: Iterable[str]) -> bool:
        return self.requested_ids.issuperset(channel_ids)

    def stats_by_id(self) -> dict[str, ChannelStats]:
        return {stats.channel_id: stats for stats in self.entries}


class DailyStatsCache:
    """
    Process-local memo of the last full provider refresh.

    Holds provider-derived fields only. An entry is served only for the day it was
    captured on; a new calendar day makes it a miss on the next read.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entry: CacheEntry | None = None

    def get(self, day: date) -> CacheEntry | None:
        with self._lock:
            entry = self._entry
        if entry is None or entry.day != day:
            return None
        return entry

    def put(
        self,
        day: date,
        entries: Iterable[ChannelStats],
        *,
        requested_ids: Iterable[str],
    ) -> CacheEntry:
        entry = CacheEntry(
            day=day,
            entries=tuple(entries),
            requested_ids=frozenset(requested_ids),
        )
        with self._lock:
            self._entry = entry
        return entry
