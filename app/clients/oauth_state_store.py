"""Persistence for single-use OAuth state records."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from app.clients.sqlite_store import SQLiteDatabase, from_db_timestamp, to_db_timestamp
from app.models.oauth import OAuthStateRecord, Platform


class OAuthStateStore:
    """Table gateway for ``oauth_states``."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def insert(self, record: OAuthStateRecord) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO oauth_states
                    (state, client_id, agency_id, platform, user_id, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.state,
                    record.client_id,
                    record.agency_id,
                    record.platform.value,
                    record.user_id,
                    to_db_timestamp(record.created_at),
                    to_db_timestamp(record.expires_at),
                ),
            )

    def take(self, state: str) -> Optional[OAuthStateRecord]:
        """
        Delete the row for ``state`` and return it, or ``None`` when absent.

        The select and delete share one write-locked transaction, so of several
        concurrent callers at most one receives the record.
        """
        with self._db.transaction(immediate=True) as conn:
            row = conn.execute(
                "SELECT * FROM oauth_states WHERE state = ?", (state,)
            ).fetchone()
            if row is None:
                return None
            deleted = conn.execute(
                "DELETE FROM oauth_states WHERE id = ?", (row["id"],)
            ).rowcount
        if deleted != 1:
            return None
        return self._row_to_record(row)

    def delete_expired(self, now: datetime) -> int:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM oauth_states WHERE expires_at <= ?",
                (to_db_timestamp(now),),
            )
            return cursor.rowcount

    def count(self) -> int:
        with self._db.transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM oauth_states").fetchone()
        return int(row["total"])

    def count_expired(self, now: datetime) -> int:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM oauth_states WHERE expires_at <= ?",
                (to_db_timestamp(now),),
            ).fetchone()
        return int(row["total"])

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> OAuthStateRecord:
        return OAuthStateRecord(
            id=row["id"],
            state=row["state"],
            client_id=row["client_id"],
            agency_id=row["agency_id"],
            platform=Platform(row["platform"]),
            user_id=row["user_id"],
            created_at=from_db_timestamp(row["created_at"]),
            expires_at=from_db_timestamp(row["expires_at"]),
        )


__all__ = ["OAuthStateStore"]
