"""
Main CLI command registration.

Commands import the application lazily so ``--help`` works without a
configured environment.
"""
import typer

from . import maintenance, server

app = typer.Typer(help="CityGuard auth service CLI", no_args_is_help=True)

app.command("serve")(server.serve)
app.command("status")(server.status)
app.command("init-db")(maintenance.init_db)
app.command("sweep-sessions")(maintenance.sweep_sessions)
app.command("generate-secrets")(maintenance.generate_secrets)

__all__ = ["app"]
