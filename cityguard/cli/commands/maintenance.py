"""
Database and key maintenance commands.
"""
import asyncio
import secrets
from datetime import timedelta

import typer
from rich.table import Table

from ..utils import console, print_error, print_success


def _database_settings():
    from ...core.config import get_settings

    settings = get_settings()
    if settings.STORAGE_BACKEND != "sql":
        print_error("STORAGE_BACKEND is not 'sql'; nothing to do")
        raise typer.Exit(code=1)
    return settings


def init_db() -> None:
    """Create all tables."""
    from ...auth import audit, session_management, users  # noqa: F401  registers the tables
    from ...db import Database

    settings = _database_settings()

    async def run() -> None:
        database = Database(settings.DATABASE_URL, echo_sql=settings.ECHO_SQL)
        try:
            await database.create_tables()
        finally:
            await database.close()

    asyncio.run(run())
    print_success("Database tables created")


def sweep_sessions() -> None:
    """Delete expired sessions and sessions retired past the retention window."""
    from ...auth.session_management import SQLSessionStore
    from ...db import Database

    settings = _database_settings()

    async def run() -> int:
        database = Database(settings.DATABASE_URL, echo_sql=settings.ECHO_SQL)
        try:
            store = SQLSessionStore(
                database,
                max_active_sessions=settings.MAX_ACTIVE_SESSIONS,
                retention=timedelta(days=settings.SESSION_RETENTION_DAYS),
                timeout=settings.STORAGE_TIMEOUT_SECONDS,
            )
            return await store.sweep_expired()
        finally:
            await database.close()

    removed = asyncio.run(run())
    print_success(f"Removed {removed} session(s)")


def generate_secrets(
    length: int = typer.Option(64, min=32, help="Bytes of randomness per secret"),
) -> None:
    """Print two fresh, distinct signing secrets for .env."""
    table = Table(title="Signing secrets")
    table.add_column("Variable", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("JWT_SECRET", secrets.token_urlsafe(length))
    table.add_row("JWT_REFRESH_SECRET", secrets.token_urlsafe(length))
    console.print(table)
