from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from backend.tracker.dependencies import reset_cached_dependencies
from backend.tracker.main import create_app
from backend.tracker.repositories.database import Database
from backend.tracker.repositories.snapshot_repository import SnapshotRepository
from tests.fakes import FakeYouTubeApi


@contextmanager
def _configured_client(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    *,
    api_key: str = "test-youtube-key",
    db_path: Path | None = None,
) -> Iterator[TestClient]:
    data_dir = tmp_path / "runtime-data-custom"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CHANNEL_TRACKER_DATA_DIR", str(data_dir))
    monkeypatch.setenv("CHANNEL_TRACKER_YOUTUBE_API_KEY", api_key)
    monkeypatch.setenv("CHANNEL_TRACKER_SCHEDULER_ENABLED", "0")
    monkeypatch.setenv("CHANNEL_TRACKER_TELEMETRY_SINK", "none")
    if db_path is None:
        monkeypatch.delenv("CHANNEL_TRACKER_DB_PATH", raising=False)
    else:
        monkeypatch.setenv("CHANNEL_TRACKER_DB_PATH", str(db_path))

    reset_cached_dependencies()
    try:
        with TestClient(create_app()) as test_client:
            yield test_client
    finally:
        reset_cached_dependencies()


def _runtime_database(tmp_path: Path) -> Database:
    database = Database((tmp_path / "runtime-data" / "state.db").resolve())
    database.initialize()
    return database


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "api_key_configured": True,
        "database_connected": True,
    }


def test_request_id_is_echoed_or_generated(client: TestClient) -> None:
    echoed = client.get("/health", headers={"X-Request-ID": "req-fixed-1"})
    generated = client.get("/health")

    assert echoed.headers["X-Request-ID"] == "req-fixed-1"
    assert generated.headers["X-Request-ID"]


def test_add_channel_returns_composed_channel(
    client: TestClient,
    fake_youtube: FakeYouTubeApi,
) -> None:
    fake_youtube.add_channel(
        "UC_creator",
        title="Creator",
        videos=12,
        views=3400,
        subscribers=56,
        handle="creator",
    )

    response = client.post("/channel", json={"url": "https://www.youtube.com/@creator"})

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "UC_creator"
    assert body["channel_id"] == "UC_creator"
    assert body["title"] == "Creator"
    assert body["thumbnail"] == "https://yt3.example/UC_creator.jpg"
    assert (body["subscriber_count"], body["video_count"], body["view_count"]) == (56, 12, 3400)
    assert body["url"] == "https://www.youtube.com/@creator"
    assert body["note"] == ""
    assert body["description"] == ""
    assert body["detail_description"] == ""
    assert body["added_at"]


def test_add_channel_requires_url(client: TestClient, fake_youtube: FakeYouTubeApi) -> None:
    missing = client.post("/channel", json={})
    blank = client.post("/channel", json={"url": "   "})

    assert missing.status_code == 400
    assert "url" in missing.json()["detail"]
    assert blank.status_code == 400
    assert "Channel URL is required" in blank.json()["detail"]
    assert fake_youtube.calls == []


def test_add_channel_rejects_non_channel_url(client: TestClient) -> None:
    response = client.post("/channel", json={"url": "https://www.youtube.com/watch?v=abc123"})

    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid YouTube channel URL format."}


def test_add_channel_unknown_channel_returns_404(client: TestClient) -> None:
    response = client.post("/channel", json={"url": "https://www.youtube.com/@nobody"})

    assert response.status_code == 404
    assert response.json() == {"detail": "Channel not found"}


def test_add_channel_twice_returns_409(client: TestClient, fake_youtube: FakeYouTubeApi) -> None:
    fake_youtube.add_channel("UC_a")
    url = "https://www.youtube.com/channel/UC_a"

    assert client.post("/channel", json={"url": url}).status_code == 200
    duplicate = client.post("/channel", json={"url": url})

    assert duplicate.status_code == 409
    assert "UC_a" in duplicate.json()["detail"]
    assert len(client.get("/channels").json()) == 1


def test_add_channel_provider_failure_returns_502(
    client: TestClient,
    fake_youtube: FakeYouTubeApi,
) -> None:
    fake_youtube.add_channel("UC_a")
    fake_youtube.failing_channel_calls = {0}

    response = client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_a"})

    assert response.status_code == 502
    assert response.json() == {"detail": "Failed to fetch channel data from YouTube API"}


def test_add_channel_without_api_key_returns_500(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    fake_youtube: FakeYouTubeApi,
) -> None:
    with _configured_client(tmp_path, monkeypatch, api_key="") as client:
        health = client.get("/health")
        response = client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_a"})

    assert health.json()["api_key_configured"] is False
    assert response.status_code == 500
    assert "CHANNEL_TRACKER_YOUTUBE_API_KEY" in response.json()["detail"]
    assert fake_youtube.calls == []


def test_list_channels_empty(client: TestClient, fake_youtube: FakeYouTubeApi) -> None:
    response = client.get("/channels")

    assert response.status_code == 200
    assert response.json() == []
    assert fake_youtube.calls == []


def test_list_channels_uses_daily_cache_until_refresh(
    client: TestClient,
    fake_youtube: FakeYouTubeApi,
) -> None:
    fake_youtube.add_channel("UC_a", videos=5, views=500)
    client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_a"})

    first = client.get("/channels").json()
    fake_youtube.set_counts("UC_a", videos=6, views=650)
    cached = client.get("/channels").json()
    refreshed = client.get("/channels", params={"refresh": "true"}).json()

    assert first == cached
    assert (first[0]["video_count"], first[0]["view_count"]) == (5, 500)
    assert (refreshed[0]["video_count"], refreshed[0]["view_count"]) == (6, 650)
    # one lookup on add, one batch on the first listing, one forced batch
    assert len(fake_youtube.channel_calls()) == 3


def test_patch_note_updates_listing_and_keeps_other_fields(
    client: TestClient,
    fake_youtube: FakeYouTubeApi,
) -> None:
    fake_youtube.add_channel("UC_a")
    client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_a"})
    client.patch("/channel/UC_a/note", json={"description": "Tech reviews"})

    response = client.patch("/channel/UC_a/note", json={"note": "check weekly"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "channel_id": "UC_a",
        "created": False,
        "note": "check weekly",
    }
    channel = client.get("/channels").json()[0]
    assert channel["note"] == "check weekly"
    assert channel["description"] == "Tech reviews"
    assert channel["detail_description"] == ""


def test_patch_accepts_camel_case_detail_and_null_clears(
    client: TestClient,
    fake_youtube: FakeYouTubeApi,
) -> None:
    fake_youtube.add_channel("UC_a")
    client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_a"})

    set_response = client.patch("/channel/UC_a/note", json={"detailDescription": "long text"})
    clear_response = client.patch("/channel/UC_a/note", json={"detail_description": None})

    assert set_response.json()["detail_description"] == "long text"
    assert clear_response.json()["detail_description"] == ""
    assert client.get("/channels").json()[0]["detail_description"] == ""


def test_patch_unknown_channel_creates_metadata_record(client: TestClient) -> None:
    response = client.patch("/channel/UC_new/note", json={"note": "later"})

    assert response.status_code == 200
    assert response.json()["created"] is True


def test_patch_rejects_non_string_values(client: TestClient) -> None:
    response = client.patch("/channel/UC_a/note", json={"note": 123})

    assert response.status_code == 400
    assert "note" in response.json()["detail"]


def test_delete_channel_is_idempotent(client: TestClient, fake_youtube: FakeYouTubeApi) -> None:
    fake_youtube.add_channel("UC_a")
    fake_youtube.add_channel("UC_b")
    client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_a"})
    client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_b"})

    first = client.delete("/channel/UC_a")
    second = client.delete("/channel/UC_a")

    assert first.status_code == 200
    assert first.json() == {"success": True, "removed": True}
    assert second.status_code == 200
    assert second.json() == {"success": True, "removed": False}
    assert [channel["id"] for channel in client.get("/channels").json()] == ["UC_b"]


def test_daily_summary_counts_first_seen_channel_totals(
    client: TestClient,
    fake_youtube: FakeYouTubeApi,
) -> None:
    fake_youtube.add_channel("UC_a", videos=4, views=900)
    client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_a"})
    client.get("/channels")

    response = client.get("/daily-summary")

    assert response.status_code == 200
    body = response.json()
    assert body["new_videos_today"] == 4
    assert body["new_views_today"] == 900
    assert body["channels"] == [
        {"channel_id": "UC_a", "new_videos": 4, "new_views": 900, "first_seen": True}
    ]


def test_daily_summary_for_explicit_date(client: TestClient, tmp_path: Path) -> None:
    snapshots = SnapshotRepository(_runtime_database(tmp_path))
    snapshots.upsert(channel_id="UC_a", day=date(2026, 1, 1), video_count=10, view_count=1000)
    snapshots.upsert(channel_id="UC_a", day=date(2026, 1, 2), video_count=12, view_count=900)
    snapshots.upsert(channel_id="UC_b", day=date(2026, 1, 1), video_count=3, view_count=30)
    snapshots.upsert(channel_id="UC_b", day=date(2026, 1, 2), video_count=4, view_count=70)

    response = client.get("/daily-summary", params={"date": "2026-01-02"})
    empty_day = client.get("/daily-summary", params={"date": "2025-12-31"})

    assert response.status_code == 200
    assert response.json() == {
        "date": "2026-01-02",
        "new_videos_today": 3,
        "new_views_today": 40,
        "channels": [
            {"channel_id": "UC_a", "new_videos": 2, "new_views": 0, "first_seen": False},
            {"channel_id": "UC_b", "new_videos": 1, "new_views": 40, "first_seen": False},
        ],
    }
    assert empty_day.json() == {
        "date": "2025-12-31",
        "new_videos_today": 0,
        "new_views_today": 0,
        "channels": [],
    }


def test_daily_summary_rejects_malformed_date(client: TestClient) -> None:
    response = client.get("/daily-summary", params={"date": "yesterday"})

    assert response.status_code == 400


def test_store_unavailable_returns_503(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    fake_youtube: FakeYouTubeApi,
) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied", encoding="utf-8")

    with _configured_client(
        tmp_path,
        monkeypatch,
        db_path=blocker / "state.db",
    ) as client:
        listing = client.get("/channels")
        added = client.post("/channel", json={"url": "https://www.youtube.com/channel/UC_a"})
        health = client.get("/health")

    assert listing.status_code == 503
    assert listing.json() == {"detail": "Database not connected"}
    assert added.status_code == 503
    assert health.status_code == 200
    assert health.json()["database_connected"] is False
    assert fake_youtube.calls == []
