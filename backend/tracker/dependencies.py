from __future__ import annotations

from functools import lru_cache

from backend.tracker.clock import FixedOffsetClock
from backend.tracker.config import AppSettings, load_settings
from backend.tracker.repositories.channel_repository import ChannelRepository
from backend.tracker.repositories.database import Database
from backend.tracker.repositories.snapshot_repository import SnapshotRepository
from backend.tracker.services.channel_registry import ChannelRegistry
from backend.tracker.services.daily_cache import DailyStatsCache
from backend.tracker.services.delta_engine import DailySummaryService
from backend.tracker.services.stats_provider import YouTubeStatsProvider
from backend.tracker.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_database() -> Database:
    database = Database(get_settings().db_path)
    database.initialize()
    return database


@lru_cache(maxsize=1)
def get_clock() -> FixedOffsetClock:
    return FixedOffsetClock(get_settings().day_utc_offset_hours)


@lru_cache(maxsize=1)
def get_daily_cache() -> DailyStatsCache:
    return DailyStatsCache()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    return build_telemetry_client(get_settings())


@lru_cache(maxsize=1)
def get_stats_provider() -> YouTubeStatsProvider:
    settings = get_settings()
    return YouTubeStatsProvider(
        api_key=settings.youtube_api_key,
        base_url=settings.youtube_api_base_url,
        timeout_seconds=settings.youtube_http_timeout_seconds,
        max_batch_size=settings.youtube_batch_size,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_snapshot_repository() -> SnapshotRepository:
    return SnapshotRepository(get_database())


@lru_cache(maxsize=1)
def get_registry() -> ChannelRegistry:
    return ChannelRegistry(
        channel_repository=ChannelRepository(get_database()),
        snapshot_store=get_snapshot_repository(),
        provider=get_stats_provider(),
        cache=get_daily_cache(),
        clock=get_clock(),
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_summary_service() -> DailySummaryService:
    return DailySummaryService(get_snapshot_repository(), telemetry=get_telemetry())


def reset_cached_dependencies() -> None:
    get_summary_service.cache_clear()
    get_registry.cache_clear()
    get_snapshot_repository.cache_clear()
    get_stats_provider.cache_clear()
    get_telemetry.cache_clear()
    get_daily_cache.cache_clear()
    get_clock.cache_clear()
    get_database.cache_clear()
    get_settings.cache_clear()
