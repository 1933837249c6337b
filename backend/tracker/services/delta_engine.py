from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from backend.tracker.repositories.snapshot_repository import SnapshotStore
from backend.tracker.telemetry import TelemetryClient

LOGGER = logging.getLogger("channel_tracker.daily_summary")


@dataclass(frozen=True)
class ChannelDelta:
    channel_id: str
    new_videos: int
    new_views: int
    first_seen: bool


@dataclass(frozen=True)
class DailySummary:
    day: date
    new_videos: int
    new_views: int
    channels: tuple[ChannelDelta, ...]


class DailySummaryService:
    def __init__(
        self,
        snapshot_store: SnapshotStore,
        *,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._snapshot_store = snapshot_store
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    def compute(self, day: date) -> DailySummary:
        """
        Diff each snapshot of `day` against the same channel's snapshot of the previous day.

        Decreases clamp to zero. A channel without a previous-day snapshot counts its
        whole current totals as new, which also covers gaps in the snapshot history.
        """
        previous_day = day - timedelta(days=1)
        deltas: list[ChannelDelta] = []
        for snapshot in self._snapshot_store.list_by_day(day):
            previous = self._snapshot_store.get(snapshot.channel_id, previous_day)
            if previous is None:
                deltas.append(
                    ChannelDelta(
                        channel_id=snapshot.channel_id,
                        new_videos=snapshot.video_count,
                        new_views=snapshot.view_count,
                        first_seen=True,
                    )
                )
                continue
            deltas.append(
                ChannelDelta(
                    channel_id=snapshot.channel_id,
                    new_videos=max(0, snapshot.video_count - previous.video_count),
                    new_views=max(0, snapshot.view_count - previous.view_count),
                    first_seen=False,
                )
            )

        summary = DailySummary(
            day=day,
            new_videos=sum(delta.new_videos for delta in deltas),
            new_views=sum(delta.new_views for delta in deltas),
            channels=tuple(deltas),
        )
        LOGGER.debug(
            "daily summary computed day=%s channels=%s new_videos=%s new_views=%s",
            day.isoformat(),
            len(deltas),
            summary.new_videos,
            summary.new_views,
        )
        self._telemetry.emit(
            "daily_summary.computed",
            day=day,
            channels=len(deltas),
        )
        return summary
