"""Administrative helpers for agencies, clients and their platform connections.

Sign-up, invitations and client management live in the web app; this tool
covers the same records for local development and support work.

Example usages::

    # Register a client under an agency and give a user access to it.
    python -m scripts.manage_agency add-client client-1 agency-1 --name "Acme"
    python -m scripts.manage_agency add-member agency-1 user-1 --role admin

    # Mint a session cookie value for a user (local testing of the OAuth flow).
    python -m scripts.manage_agency session-cookie user-1

    # Inspect a client's connection and make sure its token is still usable.
    python -m scripts.manage_agency connection client-1 google_analytics
    python -m scripts.manage_agency refresh 6f1c0d...
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from pydantic import ValidationError

from app.clients import AgencyStore, ConnectionStore, SessionTokenCodec, SQLiteDatabase
from app.core.config import AppSettings
from app.core.errors import PersistenceError
from app.core.logging import configure_logging
from app.dependencies import build_container
from app.models.oauth import Platform

EXIT_OK = 0
EXIT_NOT_USABLE = 1
EXIT_VALIDATION_ERROR = 2
EXIT_PERSISTENCE_ERROR = 4


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage agency membership, clients and platform connections."
    )
    parser.add_argument(
        "--database",
        default=None,
        help="SQLite database path (default: DATABASE_PATH from the environment).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    add_client = subparsers.add_parser("add-client", help="Create or rename a client.")
    add_client.add_argument("client_id")
    add_client.add_argument("agency_id")
    add_client.add_argument("--name", required=True)

    add_member = subparsers.add_parser("add-member", help="Grant a user access to an agency.")
    add_member.add_argument("agency_id")
    add_member.add_argument("user_id")
    add_member.add_argument("--role", default="viewer")

    cookie = subparsers.add_parser("session-cookie", help="Print a signed session cookie.")
    cookie.add_argument("user_id")

    connection = subparsers.add_parser("connection", help="Show a client's connection.")
    connection.add_argument("client_id")
    connection.add_argument("platform", choices=[platform.value for platform in Platform])

    refresh = subparsers.add_parser(
        "refresh", help="Refresh a connection's access token when it is about to expire."
    )
    refresh.add_argument("connection_id")
    return parser


def _show_connection(database: SQLiteDatabase, client_id: str, platform: Platform) -> int:
    connection = ConnectionStore(database).get_connection(client_id=client_id, platform=platform)
    if connection is None:
        print(f"No {platform.value} connection for client {client_id}")
        return EXIT_NOT_USABLE
    expires = connection.token_expires_at.isoformat() if connection.token_expires_at else "never"
    print(f"{connection.id}: {connection.account_name} ({connection.account_id})")
    print(f"  status: {connection.status.value}, token expires: {expires}")
    if connection.error_message:
        print(f"  error: {connection.error_message}")
    return EXIT_OK


async def _refresh(settings: AppSettings, connection_id: str) -> int:
    container = build_container(settings)
    try:
        token = await container.connection_service.ensure_valid_token(connection_id)
    finally:
        await container.aclose()
    if token is None:
        print(f"Connection {connection_id} is missing or needs reconnecting")
        return EXIT_NOT_USABLE
    print(f"Connection {connection_id} has a usable access token")
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
    if args.database:
        settings = settings.model_copy(
            update={"database": settings.database.model_copy(update={"path": args.database})}
        )

    if args.command == "session-cookie":
        codec = SessionTokenCodec(
            settings.security.session_secret,
            ttl_seconds=settings.security.session_ttl_seconds,
        )
        print(f"{settings.security.session_cookie_name}={codec.encode(args.user_id)}")
        return EXIT_OK

    try:
        database = SQLiteDatabase(
            settings.database.path, busy_timeout=settings.database.busy_timeout_seconds
        )
        agencies = AgencyStore(database)
        if args.command == "add-client":
            agencies.add_client(client_id=args.client_id, agency_id=args.agency_id, name=args.name)
            print(f"Client {args.client_id} belongs to agency {args.agency_id}")
            return EXIT_OK
        if args.command == "add-member":
            agencies.add_member(agency_id=args.agency_id, user_id=args.user_id, role=args.role)
            print(f"User {args.user_id} added to agency {args.agency_id} as {args.role}")
            return EXIT_OK
        if args.command == "connection":
            return _show_connection(database, args.client_id, Platform(args.platform))
        return asyncio.run(_refresh(settings, args.connection_id))
    except PersistenceError as exc:
        print(f"Database error: {exc}", file=sys.stderr)
        return EXIT_PERSISTENCE_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
