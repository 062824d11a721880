"""Maintenance tool for abandoned OAuth state and pending-connection rows.

Users who leave a platform consent screen without finishing leave state rows
behind. The callback endpoint reaps them opportunistically; this tool lets a
cron job or systemd timer do the same on quiet installations.

Example usages::

    # Report how many state rows are outstanding and how many have expired.
    python -m scripts.purge_oauth_states stats

    # Delete expired state rows and stale pending connections.
    python -m scripts.purge_oauth_states purge --database /srv/autopilot/autopilot.db
"""

from __future__ import annotations

import argparse
import sys
from typing import Callable

from pydantic import ValidationError

from app.clients import AgencyStore, ConnectionStore, OAuthStateStore, SQLiteDatabase
from app.core.config import AppSettings
from app.core.errors import PersistenceError
from app.core.logging import configure_logging
from app.models.oauth import utcnow
from app.services import ConnectionService, OAuthStateService, TokenCipherService

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_PERSISTENCE_ERROR = 4


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspect or delete expired OAuth state rows."
    )
    parser.add_argument(
        "--database",
        default=None,
        help="SQLite database path (default: DATABASE_PATH from the environment).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("stats", help="Print outstanding and expired state counts.")
    subparsers.add_parser(
        "purge", help="Delete expired state rows and stale pending connections."
    )
    return parser


def _stats(state_store: OAuthStateStore) -> int:
    total = state_store.count()
    expired = state_store.count_expired(utcnow())
    print(f"Outstanding OAuth states: {total} ({expired} expired)")
    return EXIT_OK


def _purge(settings: AppSettings, database: SQLiteDatabase, state_store: OAuthStateStore) -> int:
    state_service = OAuthStateService(state_store, ttl_seconds=settings.oauth.state_ttl_seconds)
    connection_service = ConnectionService(
        store=ConnectionStore(database),
        agency_store=AgencyStore(database),
        token_cipher=TokenCipherService(secret=settings.security.token_encryption_secret),
        pending_ttl_seconds=settings.oauth.pending_ttl_seconds,
    )
    states = state_service.purge_expired()
    pending = connection_service.purge_stale_pending()
    print(f"Purged {states} expired state(s) and {pending} stale pending connection(s)")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = AppSettings()  # type: ignore[call-arg]
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    configure_logging(settings.log_level)
    db_path = args.database or settings.database.path

    try:
        database = SQLiteDatabase(db_path, busy_timeout=settings.database.busy_timeout_seconds)
        state_store = OAuthStateStore(database)
        handlers: dict[str, Callable[[], int]] = {
            "stats": lambda: _stats(state_store),
            "purge": lambda: _purge(settings, database, state_store),
        }
        return handlers[args.command]()
    except PersistenceError as exc:
        print(f"Database error: {exc}", file=sys.stderr)
        return EXIT_PERSISTENCE_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
