"""
Server commands.
"""
from typing import Optional

import typer

from ..utils import print_error, print_info, print_success, print_warning


def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to HOST)"),
    port: Optional[int] = typer.Option(None, help="Port (defaults to PORT)"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
    workers: int = typer.Option(1, help="Worker processes"),
) -> None:
    """Run the API server with uvicorn."""
    import uvicorn
    from pydantic import ValidationError

    from ...core.config import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(code=1)

    host = host or settings.HOST
    port = port or settings.PORT
    print_success(f"Starting CityGuard at http://{host}:{port}")
    if settings.STORAGE_BACKEND == "memory" and workers > 1:
        print_warning("In-memory storage is per process; each worker keeps its own users and sessions")

    uvicorn.run(
        "cityguard.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=settings.LOG_LEVEL.lower(),
    )


def status() -> None:
    """Show the effective configuration (secrets omitted)."""
    from ...core.config import get_settings

    settings = get_settings()
    print_info("Server status:")
    print_info(f"  Environment: {settings.ENV}")
    print_info(f"  Debug mode: {settings.DEBUG}")
    print_info(f"  Storage: {settings.STORAGE_BACKEND}")
    print_info(f"  Access token TTL: {settings.ACCESS_TOKEN_EXPIRE_MINUTES} min")
    print_info(f"  Lockout: {settings.MAX_LOGIN_ATTEMPTS} attempts / {settings.ACCOUNT_LOCK_MINUTES} min")
    print_info(
        f"  Docs: http://{settings.HOST}:{settings.PORT}/docs" if settings.DOCS_ENABLED else "  Docs: Disabled"
    )
