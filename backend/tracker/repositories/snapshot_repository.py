from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from backend.tracker.repositories.common import to_count, utc_now_iso
from backend.tracker.repositories.database import Database


@dataclass(frozen=True)
class StatsSnapshot:
    channel_id: str
    day: date
    video_count: int
    view_count: int
    subscriber_count: int | None
    captured_at: str

    @property
    def snapshot_key(self) -> str:
        return snapshot_key(self.channel_id, self.day)


class SnapshotStore(Protocol):
    def upsert(
        self,
        *,
        channel_id: str,
        day: date,
        video_count: int,
        view_count: int,
        subscriber_count: int | None = None,
    ) -> None:
        ...

    def get(self, channel_id: str, day: date) -> StatsSnapshot | None:
        ...

    def list_by_day(self, day: date) -> list[StatsSnapshot]:
        ...

    def list_all(self) -> list[StatsSnapshot]:
        ...


def snapshot_key(channel_id: str, day: date) -> str:
    return f"{channel_id}_{day.isoformat()}"


class SnapshotRepository:
    """SQLite-backed daily counter store; one row per (channel, day)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def upsert(
        self,
        *,
        channel_id: str,
        day: date,
        video_count: int,
        view_count: int,
        subscriber_count: int | None = None,
    ) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO daily_stats (
                    snapshot_key, channel_id, day, video_count, view_count,
                    subscriber_count, captured_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(snapshot_key) DO UPDATE SET
                    video_count = excluded.video_count,
                    view_count = excluded.view_count,
                    subscriber_count = COALESCE(
                        excluded.subscriber_count, daily_stats.subscriber_count
                    ),
                    captured_at = excluded.captured_at
                """,
                (
                    snapshot_key(channel_id, day),
                    channel_id,
                    day.isoformat(),
                    to_count(video_count),
                    to_count(view_count),
                    subscriber_count,
                    utc_now_iso(),
                ),
            )

    def get(self, channel_id: str, day: date) -> StatsSnapshot | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT channel_id, day, video_count, view_count, subscriber_count, captured_at
                FROM daily_stats
                WHERE snapshot_key = ?
                """,
                (snapshot_key(channel_id, day),),
            ).fetchone()
        if row is None:
            return None
        return _row_to_snapshot(row)

    def list_by_day(self, day: date) -> list[StatsSnapshot]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT channel_id, day, video_count, view_count, subscriber_count, captured_at
                FROM daily_stats
                WHERE day = ?
                ORDER BY channel_id ASC
                """,
                (day.isoformat(),),
            ).fetchall()
        return [_row_to_snapshot(row) for row in rows]

    def list_all(self) -> list[StatsSnapshot]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT channel_id, day, video_count, view_count, subscriber_count, captured_at
                FROM daily_stats
                ORDER BY day ASC, channel_id ASC
                """
            ).fetchall()
        return [_row_to_snapshot(row) for row in rows]


def _row_to_snapshot(row: sqlite3.Row) -> StatsSnapshot:
    raw_subscribers = row["subscriber_count"]
    return StatsSnapshot(
        channel_id=str(row["channel_id"]),
        day=date.fromisoformat(str(row["day"])),
        video_count=to_count(row["video_count"]),
        view_count=to_count(row["view_count"]),
        subscriber_count=None if raw_subscribers is None else to_count(raw_subscribers),
        captured_at=str(row["captured_at"]),
    )
