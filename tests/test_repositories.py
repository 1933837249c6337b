from __future__ import annotations

from collections.abc import Iterator
from datetime import date
from pathlib import Path

import pytest

from backend.tracker.repositories.channel_repository import ChannelRepository
from backend.tracker.repositories.database import Database, StoreUnavailableError
from backend.tracker.repositories.snapshot_repository import SnapshotRepository, snapshot_key

DAY = date(2026, 3, 10)


def test_snapshot_upsert_is_idempotent_per_channel_and_day(database: Database) -> None:
    repo = SnapshotRepository(database)

    repo.upsert(channel_id="UC_a", day=DAY, video_count=5, view_count=200, subscriber_count=10)
    repo.upsert(channel_id="UC_a", day=DAY, video_count=6, view_count=260)

    snapshots = repo.list_all()
    assert len(snapshots) == 1
    snapshot = snapshots[0]
    assert snapshot.video_count == 6
    assert snapshot.view_count == 260
    assert snapshot.subscriber_count == 10
    assert snapshot.snapshot_key == "UC_a_2026-03-10"


def test_snapshot_key_uses_iso_calendar_date() -> None:
    assert snapshot_key("UC_x", date(2026, 1, 2)) == "UC_x_2026-01-02"


def test_snapshot_get_and_list_by_day(database: Database) -> None:
    repo = SnapshotRepository(database)
    repo.upsert(channel_id="UC_b", day=DAY, video_count=1, view_count=10)
    repo.upsert(channel_id="UC_a", day=DAY, video_count=2, view_count=20)
    repo.upsert(channel_id="UC_a", day=date(2026, 3, 9), video_count=1, view_count=15)

    assert repo.get("UC_a", date(2026, 3, 8)) is None
    previous = repo.get("UC_a", date(2026, 3, 9))
    assert previous is not None
    assert previous.view_count == 15
    assert previous.day == date(2026, 3, 9)

    assert [snapshot.channel_id for snapshot in repo.list_by_day(DAY)] == ["UC_a", "UC_b"]
    assert repo.list_by_day(date(2026, 3, 11)) == []
    assert [(snapshot.channel_id, snapshot.day) for snapshot in repo.list_all()] == [
        ("UC_a", date(2026, 3, 9)),
        ("UC_a", DAY),
        ("UC_b", DAY),
    ]


def test_channel_upsert_refreshes_title_but_keeps_notes(database: Database) -> None:
    repo = ChannelRepository(database)
    repo.upsert_channel(channel_id="UC_a", source_url="https://youtube.com/@a", title="Old")
    repo.patch_metadata("UC_a", {"note": "keep me"})

    record = repo.upsert_channel(
        channel_id="UC_a",
        source_url="https://youtube.com/channel/UC_a",
        title="New",
    )

    assert record.title == "New"
    assert record.source_url == "https://youtube.com/channel/UC_a"
    assert record.note == "keep me"
    assert len(repo.list_channels()) == 1


def test_channel_patch_applies_only_present_fields(database: Database) -> None:
    repo = ChannelRepository(database)
    repo.upsert_channel(channel_id="UC_a", source_url="u", title="t")
    repo.patch_metadata("UC_a", {"description": "about", "detail_description": "long"})

    created = repo.patch_metadata("UC_a", {"note": "x"})
    repo.patch_metadata("UC_a", {"description": ""})

    record = repo.get_channel("UC_a")
    assert created is False
    assert record is not None
    assert record.note == "x"
    assert record.description == ""
    assert record.detail_description == "long"


def test_channel_patch_creates_missing_record(database: Database) -> None:
    repo = ChannelRepository(database)

    created = repo.patch_metadata("UC_new", {"note": "hello"})

    record = repo.get_channel("UC_new")
    assert created is True
    assert record is not None
    assert record.note == "hello"
    assert record.source_url == ""


def test_channel_patch_rejects_unknown_fields(database: Database) -> None:
    repo = ChannelRepository(database)

    with pytest.raises(ValueError, match="title"):
        repo.patch_metadata("UC_a", {"title": "nope"})
    assert repo.get_channel("UC_a") is None


def test_channel_delete_reports_whether_row_existed(database: Database) -> None:
    repo = ChannelRepository(database)
    repo.upsert_channel(channel_id="UC_a", source_url="u", title="t")

    assert repo.delete_channel("UC_a") is True
    assert repo.delete_channel("UC_a") is False
    assert repo.get_channel("UC_a") is None


def test_channel_delete_keeps_snapshot_history(database: Database) -> None:
    channels = ChannelRepository(database)
    snapshots = SnapshotRepository(database)
    channels.upsert_channel(channel_id="UC_a", source_url="u", title="t")
    snapshots.upsert(channel_id="UC_a", day=DAY, video_count=1, view_count=1)

    channels.delete_channel("UC_a")

    assert snapshots.get("UC_a", DAY) is not None


def test_channel_list_is_newest_first(database: Database, monkeypatch: pytest.MonkeyPatch) -> None:
    timestamps: Iterator[str] = iter(
        [
            "2026-03-01T00:00:00+00:00",
            "2026-03-02T00:00:00+00:00",
            "2026-03-03T00:00:00+00:00",
        ]
    )
    monkeypatch.setattr(
        "backend.tracker.repositories.channel_repository.utc_now_iso",
        lambda: next(timestamps),
    )
    repo = ChannelRepository(database)
    for channel_id in ("UC_first", "UC_second", "UC_third"):
        repo.upsert_channel(channel_id=channel_id, source_url="u", title=channel_id)

    assert [record.channel_id for record in repo.list_channels()] == [
        "UC_third",
        "UC_second",
        "UC_first",
    ]


def test_database_initialize_reports_unusable_location(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    db = Database(blocker / "state.db")

    with pytest.raises(StoreUnavailableError):
        db.initialize()
    assert db.is_available() is False
