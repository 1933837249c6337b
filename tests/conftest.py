from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from backend.tracker.clock import FixedOffsetClock
from backend.tracker.dependencies import reset_cached_dependencies
from backend.tracker.main import create_app
from backend.tracker.repositories.database import Database
from tests.fakes import FakeYouTubeApi, MutableNow


@pytest.fixture
def fake_youtube(monkeypatch: pytest.MonkeyPatch) -> FakeYouTubeApi:
    api = FakeYouTubeApi()
    monkeypatch.setattr("backend.tracker.services.stats_provider._fetch_youtube_json", api)
    return api


@pytest.fixture
def fake_now() -> MutableNow:
    # 2026-03-10 05:00 UTC is 12:00 on 2026-03-10 at UTC+7.
    return MutableNow(datetime(2026, 3, 10, 5, 0, tzinfo=UTC))


@pytest.fixture
def clock(fake_now: MutableNow) -> FixedOffsetClock:
    return FixedOffsetClock(7, now=fake_now)


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "state.db")
    db.initialize()
    return db


def _configure_env(data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CHANNEL_TRACKER_DATA_DIR", str(data_dir))
    monkeypatch.setenv("CHANNEL_TRACKER_YOUTUBE_API_KEY", "test-youtube-key")
    monkeypatch.setenv("CHANNEL_TRACKER_SCHEDULER_ENABLED", "0")
    monkeypatch.setenv("CHANNEL_TRACKER_TELEMETRY_SINK", "none")
    monkeypatch.delenv("CHANNEL_TRACKER_DB_PATH", raising=False)


@pytest.fixture
def client(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    fake_youtube: FakeYouTubeApi,
) -> Iterator[TestClient]:
    _ = fake_youtube
    _configure_env(tmp_path / "runtime-data", monkeypatch)
    reset_cached_dependencies()

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
