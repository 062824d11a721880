"""Agency membership and client lookups used for authorization checks."""

from __future__ import annotations

from typing import Optional
from uuid import uuid4

from app.clients.sqlite_store import SQLiteDatabase


class AgencyStore:
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def is_member(self, *, agency_id: str, user_id: str) -> bool:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT id FROM team_members WHERE agency_id = ? AND user_id = ?",
                (agency_id, user_id),
            ).fetchone()
        return row is not None

    def add_member(self, *, agency_id: str, user_id: str, role: str = "viewer") -> str:
        member_id = uuid4().hex
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO team_members (id, agency_id, user_id, role)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(agency_id, user_id) DO UPDATE SET role = excluded.role
                """,
                (member_id, agency_id, user_id, role),
            )
        return member_id

    def add_client(self, *, client_id: str, agency_id: str, name: str) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO clients (id, agency_id, name) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET agency_id = excluded.agency_id, name = excluded.name
                """,
                (client_id, agency_id, name),
            )

    def get_client_agency(self, client_id: str) -> Optional[str]:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT agency_id FROM clients WHERE id = ?", (client_id,)
            ).fetchone()
        if not row:
            return None
        return row["agency_id"]


__all__ = ["AgencyStore"]
