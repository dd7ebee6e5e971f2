"""Serve mode: run the FastAPI relay for Microsoft Graph change notifications."""

import sys

import typer
import uvicorn

from src.config import RELAY_ENDPOINT_PATH, RELAY_PORT, RELAY_SHUTDOWN_TIMEOUT
from src.relay.server import create_app

from .shared import console, logger


def serve(
    port: int = typer.Option(RELAY_PORT, "--port", "-p", help="Port for the relay server"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host"),
) -> None:
    """Start the notification relay (validation handshake + change notifications)."""
    log = logger.bind(command="serve", port=port)
    log.info("serve.start")

    app = create_app()

    console.print(f"[green]Starting relay on http://{host}:{port}[/green]")
    console.print(
        f"[dim]Endpoints: GET/POST {RELAY_ENDPOINT_PATH}, GET /health, GET /stats, "
        "GET /events, GET /events/stream[/dim]"
    )
    console.print("[yellow]Graph must reach this port over HTTPS (dev tunnel or reverse proxy).[/yellow]")
    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            timeout_graceful_shutdown=int(RELAY_SHUTDOWN_TIMEOUT) + 5,
        )
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")
        sys.exit(0)
