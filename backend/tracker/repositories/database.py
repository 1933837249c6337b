from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS channels (
    channel_id TEXT PRIMARY KEY,
    source_url TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL DEFAULT '',
    note TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    detail_description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_channels_created_at ON channels(created_at DESC);

CREATE TABLE IF NOT EXISTS daily_stats (
    snapshot_key TEXT PRIMARY KEY,
    channel_id TEXT NOT NULL,
    day TEXT NOT NULL,
    video_count INTEGER NOT NULL,
    view_count INTEGER NOT NULL,
    subscriber_count INTEGER NULL,
    captured_at TEXT NOT NULL,
    UNIQUE (channel_id, day)
);

CREATE INDEX IF NOT EXISTS idx_daily_stats_day ON daily_stats(day);
"""


class StoreUnavailableError(Exception):
    pass


class Database:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Unable to open database at {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as exc:
            raise StoreUnavailableError(f"Database operation failed: {exc}") from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailableError(
                f"Unable to create database directory {self._path.parent}: {exc}"
            ) from exc
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)

    def is_available(self) -> bool:
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1").fetchone()
        except StoreUnavailableError:
            return False
        return True
