"""Shared CLI helpers: console, logger, Graph credential checks."""

import typer
from rich.console import Console

from src.config import AZURE_CLIENT_ID, AZURE_TENANT_ID, RELAY_ENDPOINT_PATH, WEBHOOK_URL
from src.utils.logger import get_logger

console = Console()
logger = get_logger("calendar_relay.cli")


def require_graph_env(log) -> tuple[str, str]:
    """Return (tenant_id, client_id) or exit with the list of missing variables."""
    missing = [k for k, v in (("AZURE_TENANT_ID", AZURE_TENANT_ID), ("AZURE_CLIENT_ID", AZURE_CLIENT_ID)) if not v]
    if missing:
        console.print(f"[red]Missing environment variables: {', '.join(missing)}[/red]")
        log.warning("cli.missing_env", missing=missing)
        raise typer.Exit(1)
    return AZURE_TENANT_ID, AZURE_CLIENT_ID


def notification_url(base_url: str | None = None) -> str:
    """Public URL Graph should post to: WEBHOOK_URL + relay endpoint path."""
    base = (base_url or WEBHOOK_URL or "").rstrip("/")
    return f"{base}{RELAY_ENDPOINT_PATH}" if base else ""
