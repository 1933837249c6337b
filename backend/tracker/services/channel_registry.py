from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date

from backend.tracker.clock import FixedOffsetClock
from backend.tracker.repositories.channel_repository import (
    METADATA_FIELDS,
    ChannelRecord,
    ChannelRepository,
)
from backend.tracker.repositories.database import StoreUnavailableError
from backend.tracker.repositories.snapshot_repository import SnapshotStore
from backend.tracker.services.channel_identifier import extract_channel_ref
from backend.tracker.services.daily_cache import CacheEntry, DailyStatsCache
from backend.tracker.services.stats_provider import ChannelStats, YouTubeStatsProvider
from backend.tracker.telemetry import TelemetryClient

LOGGER = logging.getLogger("channel_tracker.registry")


@dataclass(frozen=True)
class ComposedChannel:
    channel_id: str
    title: str
    thumbnail: str | None
    subscriber_count: int
    video_count: int
    view_count: int
    url: str
    note: str
    description: str
    detail_description: str
    added_at: str


@dataclass(frozen=True)
class SnapshotCapture:
    day: date
    tracked: int
    captured: int
    pending_ids: tuple[str, ...]

    @property
    def complete(self) -> bool:
        return not self.pending_ids


@dataclass(frozen=True)
class MetadataUpdate:
    channel_id: str
    created: bool
    applied: dict[str, str]


class ChannelRegistryError(Exception):
    pass


class InvalidChannelUrlError(ChannelRegistryError):
    pass


class ChannelAlreadyTrackedError(ChannelRegistryError):
    def __init__(self, channel_id: str) -> None:
        super().__init__(f"Channel '{channel_id}' is already tracked.")
        self.channel_id = channel_id


class ChannelRegistry:
    def __init__(
        self,
        *,
        channel_repository: ChannelRepository,
        snapshot_store: SnapshotStore,
        provider: YouTubeStatsProvider,
        cache: DailyStatsCache,
        clock: FixedOffsetClock,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._channel_repository = channel_repository
        self._snapshot_store = snapshot_store
        self._provider = provider
        self._cache = cache
        self._clock = clock
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    def list_channels(self, *, force_refresh: bool = False) -> list[ComposedChannel]:
        """
        Compose every tracked channel from today's provider stats and its stored metadata.

        Provider stats come from the daily cache when it holds an entry for today that
        covers every tracked id; otherwise all ids are fetched, snapshotted and cached.
        Ids from failed provider chunks are not cached, so the next call retries them.
        Metadata is always read from the store. Channels the provider did not return
        are omitted from the result.
        """
        records = self._channel_repository.list_channels()
        if not records:
            return []

        tracked_ids = [record.channel_id for record in records]
        today = self._clock.today()
        entry, cache_hit = self._stats_entry(today, tracked_ids, force_refresh=force_refresh)

        stats_by_id = entry.stats_by_id()
        composed: list[ComposedChannel] = []
        missing: list[str] = []
        for record in records:
            stats = stats_by_id.get(record.channel_id)
            if stats is None:
                missing.append(record.channel_id)
                continue
            composed.append(_compose(stats, record))

        if missing:
            LOGGER.warning(
                "tracked channels missing from provider stats omitted count=%s ids=%s",
                len(missing),
                ",".join(missing),
            )
            self._telemetry.emit("channels.missing", day=today, channel_ids=missing)
        self._telemetry.emit(
            "channels.list",
            cache_hit=cache_hit,
            force_refresh=force_refresh,
            tracked=len(records),
            returned=len(composed),
        )
        return composed

    def capture_snapshots(self) -> SnapshotCapture:
        """
        Make sure every tracked channel the provider answered for has today's snapshot.

        Reuses today's cache entry when it covers the tracked ids. Snapshots that a
        previous write failed to store are written again from the cached stats. Ids
        from failed provider chunks or failed writes are reported as pending.
        """
        today = self._clock.today()
        tracked_ids = [record.channel_id for record in self._channel_repository.list_channels()]
        if not tracked_ids:
            return SnapshotCapture(day=today, tracked=0, captured=0, pending_ids=())

        entry, _ = self._stats_entry(today, tracked_ids, force_refresh=False)
        tracked = set(tracked_ids)
        answered = [stats for stats in entry.entries if stats.channel_id in tracked]
        unwritten = [
            stats for stats in answered if self._snapshot_store.get(stats.channel_id, today) is None
        ]
        failed_writes = self._write_snapshots(today, unwritten)
        unanswered = [
            channel_id for channel_id in tracked_ids if channel_id not in entry.requested_ids
        ]
        return SnapshotCapture(
            day=today,
            tracked=len(tracked_ids),
            captured=len(answered) - len(failed_writes),
            pending_ids=tuple(unanswered + failed_writes),
        )

    def add_channel(self, url: str) -> ComposedChannel:
        ref = extract_channel_ref(url)
        if ref is None:
            raise InvalidChannelUrlError("Invalid YouTube channel URL format.")

        channel_id = ref.value if ref.kind == "id" else self._provider.resolve_username(ref.value)
        if self._channel_repository.get_channel(channel_id) is not None:
            raise ChannelAlreadyTrackedError(channel_id)

        stats = self._provider.fetch_one(channel_id)
        record = self._channel_repository.upsert_channel(
            channel_id=stats.channel_id,
            source_url=url.strip(),
            title=stats.title,
        )
        LOGGER.info("channel added channel_id=%s", record.channel_id)
        return _compose(stats, record)

    def update_metadata(
        self,
        channel_id: str,
        patch: Mapping[str, str | None],
    ) -> MetadataUpdate:
        """Apply only the keys present in `patch`; None or "" clears a field."""
        applied = {
            field_name: value or ""
            for field_name, value in patch.items()
            if field_name in METADATA_FIELDS
        }
        created = self._channel_repository.patch_metadata(channel_id, applied)
        if created:
            LOGGER.info("channel record created by metadata update channel_id=%s", channel_id)
        return MetadataUpdate(channel_id=channel_id, created=created, applied=applied)

    def remove_channel(self, channel_id: str) -> bool:
        removed = self._channel_repository.delete_channel(channel_id)
        if removed:
            LOGGER.info("channel removed channel_id=%s", channel_id)
        else:
            LOGGER.debug("channel removal skipped; not tracked channel_id=%s", channel_id)
        return removed

    def _stats_entry(
        self,
        day: date,
        tracked_ids: list[str],
        *,
        force_refresh: bool,
    ) -> tuple[CacheEntry, bool]:
        entry = None if force_refresh else self._cache.get(day)
        if entry is not None and entry.covers(tracked_ids):
            return entry, True

        batch = self._provider.fetch_batch(tracked_ids)
        if batch.failed_ids:
            LOGGER.warning(
                "provider refresh incomplete; failed ids stay uncached count=%s",
                len(batch.failed_ids),
            )
        self._write_snapshots(day, batch.stats)
        # Ids from failed chunks are left out so the next read fetches them again.
        entry = self._cache.put(
            day,
            batch.stats,
            requested_ids=batch.answered_ids(tracked_ids),
        )
        return entry, False

    def _write_snapshots(self, day: date, fetched: Sequence[ChannelStats]) -> list[str]:
        failed: list[str] = []
        for stats in fetched:
            try:
                self._snapshot_store.upsert(
                    channel_id=stats.channel_id,
                    day=day,
                    video_count=stats.video_count,
                    view_count=stats.view_count,
                    subscriber_count=stats.subscriber_count,
                )
            except (StoreUnavailableError, sqlite3.Error):
                LOGGER.warning(
                    "daily snapshot write failed channel_id=%s day=%s",
                    stats.channel_id,
                    day.isoformat(),
                    exc_info=True,
                )
                self._telemetry.emit(
                    "snapshot.write_failed",
                    channel_id=stats.channel_id,
                    day=day,
                )
                failed.append(stats.channel_id)
        return failed


def _compose(stats: ChannelStats, record: ChannelRecord) -> ComposedChannel:
    return ComposedChannel(
        channel_id=stats.channel_id,
        title=stats.title or record.title,
        thumbnail=stats.thumbnail,
        subscriber_count=stats.subscriber_count,
        video_count=stats.video_count,
        view_count=stats.view_count,
        url=record.source_url,
        note=record.note,
        description=record.description,
        detail_description=record.detail_description,
        added_at=record.created_at,
    )
