"""CLI commands: relay server and Graph subscription management."""

from typer import Typer

from src.cli import serve_mode, subscription_mode

app = Typer(help="Microsoft Graph calendar notification relay")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command()(serve_mode.serve)
    app.command()(subscription_mode.subscribe)
    app.command()(subscription_mode.subscriptions)
    app.command()(subscription_mode.renew)
    app.command()(subscription_mode.unsubscribe)


register_commands()
