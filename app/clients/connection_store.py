"""Persistence for pending OAuth grants and established data connections."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Optional

from app.clients.sqlite_store import SQLiteDatabase, from_db_timestamp, to_db_timestamp
from app.models.oauth import (
    AdAccount,
    ConnectionStatus,
    DataConnection,
    PendingConnection,
    Platform,
)


def _optional_timestamp(value: datetime | None) -> str | None:
    return to_db_timestamp(value) if value is not None else None


class ConnectionStore:
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def insert_pending(self, pending: PendingConnection) -> None:
        properties_json = json.dumps([account.model_dump() for account in pending.properties])
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO oauth_pending (
                    id, client_id, agency_id, platform, user_id, access_token,
                    refresh_token, token_expires_at, properties, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pending.id,
                    pending.client_id,
                    pending.agency_id,
                    pending.platform.value,
                    pending.user_id,
                    pending.access_token,
                    pending.refresh_token,
                    _optional_timestamp(pending.token_expires_at),
                    properties_json,
                    to_db_timestamp(pending.created_at),
                ),
            )

    def get_pending(
        self, *, pending_id: str, client_id: str, platform: Platform
    ) -> Optional[PendingConnection]:
        with self._db.transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM oauth_pending
                WHERE id = ? AND client_id = ? AND platform = ?
                """,
                (pending_id, client_id, platform.value),
            ).fetchone()
        if not row:
            return None
        return self._row_to_pending(row)

    def delete_pending_before(self, threshold: datetime) -> int:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM oauth_pending WHERE created_at < ?",
                (to_db_timestamp(threshold),),
            )
            return cursor.rowcount

    def promote_pending(self, pending_id: str, connection: DataConnection) -> DataConnection:
        """
        Upsert the connection for (client, platform) and drop the pending row.

        Returns the stored connection; when one already existed its id, agency
        and ``created_at`` are kept.
        """
        with self._db.transaction(immediate=True) as conn:
            existing = conn.execute(
                "SELECT id, agency_id, created_at FROM data_connections"
                " WHERE client_id = ? AND platform = ?",
                (connection.client_id, connection.platform.value),
            ).fetchone()
            if existing:
                connection = connection.model_copy(
                    update={
                        "id": existing["id"],
                        "agency_id": existing["agency_id"],
                        "created_at": from_db_timestamp(existing["created_at"]),
                    }
                )
            conn.execute(
                """
                INSERT INTO data_connections (
                    id, client_id, agency_id, platform, account_id, account_name,
                    access_token, refresh_token, token_expires_at, scopes, status,
                    last_synced_at, error_message, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(client_id, platform) DO UPDATE SET
                    account_id = excluded.account_id,
                    account_name = excluded.account_name,
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    token_expires_at = excluded.token_expires_at,
                    scopes = excluded.scopes,
                    status = excluded.status,
                    last_synced_at = excluded.last_synced_at,
                    error_message = excluded.error_message,
                    updated_at = excluded.updated_at
                """,
                (
                    connection.id,
                    connection.client_id,
                    connection.agency_id,
                    connection.platform.value,
                    connection.account_id,
                    connection.account_name,
                    connection.access_token,
                    connection.refresh_token,
                    _optional_timestamp(connection.token_expires_at),
                    json.dumps(connection.scopes),
                    connection.status.value,
                    _optional_timestamp(connection.last_synced_at),
                    connection.error_message,
                    to_db_timestamp(connection.created_at),
                    to_db_timestamp(connection.updated_at),
                ),
            )
            conn.execute("DELETE FROM oauth_pending WHERE id = ?", (pending_id,))
        return connection

    def get_connection(self, *, client_id: str, platform: Platform) -> Optional[DataConnection]:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM data_connections WHERE client_id = ? AND platform = ?",
                (client_id, platform.value),
            ).fetchone()
        if not row:
            return None
        return self._row_to_connection(row)

    def get_connection_by_id(self, connection_id: str) -> Optional[DataConnection]:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM data_connections WHERE id = ?", (connection_id,)
            ).fetchone()
        if not row:
            return None
        return self._row_to_connection(row)

    def update_tokens(
        self,
        connection_id: str,
        *,
        access_token: str,
        refresh_token: Optional[str],
        token_expires_at: datetime,
        updated_at: datetime,
    ) -> None:
        """Store refreshed (encrypted) tokens and mark the connection healthy again."""
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE data_connections
                SET access_token = ?, refresh_token = ?, token_expires_at = ?,
                    status = ?, error_message = NULL, updated_at = ?
                WHERE id = ?
                """,
                (
                    access_token,
                    refresh_token,
                    to_db_timestamp(token_expires_at),
                    ConnectionStatus.CONNECTED.value,
                    to_db_timestamp(updated_at),
                    connection_id,
                ),
            )

    def mark_status(
        self,
        connection_id: str,
        *,
        status: ConnectionStatus,
        error_message: Optional[str],
        updated_at: datetime,
    ) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE data_connections
                SET status = ?, error_message = ?, updated_at = ?
                WHERE id = ?
                """,
                (status.value, error_message, to_db_timestamp(updated_at), connection_id),
            )

    def delete_connection(self, *, connection_id: str, client_id: str) -> int:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM data_connections WHERE id = ? AND client_id = ?",
                (connection_id, client_id),
            )
            return cursor.rowcount

    @staticmethod
    def _row_to_pending(row: sqlite3.Row) -> PendingConnection:
        return PendingConnection(
            id=row["id"],
            client_id=row["client_id"],
            agency_id=row["agency_id"],
            platform=Platform(row["platform"]),
            user_id=row["user_id"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_expires_at=from_db_timestamp(row["token_expires_at"]),
            properties=[AdAccount(**item) for item in json.loads(row["properties"])],
            created_at=from_db_timestamp(row["created_at"]),
        )

    @staticmethod
    def _row_to_connection(row: sqlite3.Row) -> DataConnection:
        return DataConnection(
            id=row["id"],
            client_id=row["client_id"],
            agency_id=row["agency_id"],
            platform=Platform(row["platform"]),
            account_id=row["account_id"],
            account_name=row["account_name"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_expires_at=from_db_timestamp(row["token_expires_at"]),
            scopes=json.loads(row["scopes"]),
            status=ConnectionStatus(row["status"]),
            last_synced_at=from_db_timestamp(row["last_synced_at"]),
            error_message=row["error_message"],
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )


__all__ = ["ConnectionStore"]
