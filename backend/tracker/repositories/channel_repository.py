from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass

from backend.tracker.repositories.common import utc_now_iso
from backend.tracker.repositories.database import Database

METADATA_FIELDS: tuple[str, ...] = ("note", "description", "detail_description")


@dataclass(frozen=True)
class ChannelRecord:
    channel_id: str
    source_url: str
    title: str
    note: str
    description: str
    detail_description: str
    created_at: str
    updated_at: str


class ChannelRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def list_channels(self) -> list[ChannelRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT
                    channel_id,
                    source_url,
                    title,
                    note,
                    description,
                    detail_description,
                    created_at,
                    updated_at
                FROM channels
                ORDER BY created_at DESC, channel_id ASC
                """
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def get_channel(self, channel_id: str) -> ChannelRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT
                    channel_id,
                    source_url,
                    title,
                    note,
                    description,
                    detail_description,
                    created_at,
                    updated_at
                FROM channels
                WHERE channel_id = ?
                """,
                (channel_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_record(row)

    def upsert_channel(self, *, channel_id: str, source_url: str, title: str) -> ChannelRecord:
        """Create the channel row, or refresh its url/title while keeping user metadata."""
        now_iso = utc_now_iso()
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO channels (
                    channel_id, source_url, title, note, description,
                    detail_description, created_at, updated_at
                )
                VALUES (?, ?, ?, '', '', '', ?, ?)
                ON CONFLICT(channel_id) DO UPDATE SET
                    source_url = excluded.source_url,
                    title = excluded.title,
                    updated_at = excluded.updated_at
                """,
                (channel_id, source_url, title, now_iso, now_iso),
            )
        record = self.get_channel(channel_id)
        assert record is not None
        return record

    def patch_metadata(self, channel_id: str, fields: Mapping[str, str]) -> bool:
        """
        Apply only the metadata keys present in `fields`.

        Missing rows are created with empty url/title. Returns True when the row was created.
        """
        unknown = set(fields) - set(METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported metadata fields: {', '.join(sorted(unknown))}")

        now_iso = utc_now_iso()
        with self._db.connection() as conn:
            existing = conn.execute(
                "SELECT 1 FROM channels WHERE channel_id = ?",
                (channel_id,),
            ).fetchone()
            created = existing is None
            if created:
                conn.execute(
                    """
                    INSERT INTO channels (
                        channel_id, source_url, title, note, description,
                        detail_description, created_at, updated_at
                    )
                    VALUES (?, '', '', '', '', '', ?, ?)
                    """,
                    (channel_id, now_iso, now_iso),
                )

            # Column names come from METADATA_FIELDS, never from caller input.
            assignments = [f"{field_name} = ?" for field_name in fields]
            if assignments:
                conn.execute(
                    f"UPDATE channels SET {', '.join(assignments)}, updated_at = ? "
                    "WHERE channel_id = ?",
                    (*fields.values(), now_iso, channel_id),
                )
        return created

    def delete_channel(self, channel_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM channels WHERE channel_id = ?",
                (channel_id,),
            )
        return cursor.rowcount > 0


def _row_to_record(row: sqlite3.Row) -> ChannelRecord:
    return ChannelRecord(
        channel_id=str(row["channel_id"]),
        source_url=str(row["source_url"] or ""),
        title=str(row["title"] or ""),
        note=str(row["note"] or ""),
        description=str(row["description"] or ""),
        detail_description=str(row["detail_description"] or ""),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )
