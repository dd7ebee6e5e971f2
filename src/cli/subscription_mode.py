"""Subscription commands: create, list, renew and delete Graph subscriptions on me/events."""

import asyncio

import typer
from rich.table import Table

from src.config import SUBSCRIPTION_EXPIRATION_MINUTES, WEBHOOK_CLIENT_STATE
from src.graph import SubscriptionManager, build_graph_client

from .shared import console, logger, notification_url, require_graph_env


def _manager(log) -> SubscriptionManager:
    tenant_id, client_id = require_graph_env(log)
    console.print("[dim]Using delegated auth (token cache). Sign in if prompted.[/dim]")
    return SubscriptionManager(build_graph_client(tenant_id, client_id))


def subscribe(
    minutes: int = typer.Option(
        SUBSCRIPTION_EXPIRATION_MINUTES, "--minutes", "-m", help="Subscription lifetime in minutes"
    ),
    url: str | None = typer.Option(None, "--url", "-u", help="Public base URL (overrides WEBHOOK_URL)"),
) -> None:
    """Create a calendar subscription pointing at this relay. The relay must already be running."""
    log = logger.bind(command="subscribe")
    target = notification_url(url)
    if not target or not WEBHOOK_CLIENT_STATE:
        console.print("[red]subscribe requires WEBHOOK_URL (or --url) and WEBHOOK_CLIENT_STATE in .env[/red]")
        log.warning("subscribe.missing_config")
        raise typer.Exit(1)
    manager = _manager(log)
    try:
        sub = asyncio.run(manager.create(target, WEBHOOK_CLIENT_STATE, expiration_minutes=minutes))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    if sub is None:
        console.print("[red]Subscription was not created; see logs for the Graph error.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Created subscription {sub.id}[/green] (expires {sub.expiration_date_time})")


def subscriptions() -> None:
    """List the signed-in user's active Graph subscriptions."""
    log = logger.bind(command="subscriptions")
    manager = _manager(log)
    subs = asyncio.run(manager.list())

    table = Table(title="Graph subscriptions")
    table.add_column("ID", style="cyan")
    table.add_column("Resource", style="green")
    table.add_column("Change types")
    table.add_column("Expires")
    table.add_column("Notification URL", overflow="fold")
    for sub in subs:
        table.add_row(
            sub.id or "",
            sub.resource or "",
            sub.change_type or "",
            str(sub.expiration_date_time or ""),
            sub.notification_url or "",
        )
    console.print(table)
    log.info("subscriptions.listed", count=len(subs))


def renew(
    subscription_id: str = typer.Argument(..., help="Subscription ID"),
    minutes: int = typer.Option(
        SUBSCRIPTION_EXPIRATION_MINUTES, "--minutes", "-m", help="New lifetime in minutes from now"
    ),
) -> None:
    """Extend a subscription's expiration."""
    log = logger.bind(command="renew", subscription_id=subscription_id)
    manager = _manager(log)
    sub = asyncio.run(manager.renew(subscription_id, expiration_minutes=minutes))
    if sub is None:
        console.print(f"[red]Could not renew {subscription_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Renewed {subscription_id}[/green] (expires {sub.expiration_date_time})")


def unsubscribe(
    subscription_id: str = typer.Argument(..., help="Subscription ID"),
) -> None:
    """Delete a subscription."""
    log = logger.bind(command="unsubscribe", subscription_id=subscription_id)
    manager = _manager(log)
    if not asyncio.run(manager.delete(subscription_id)):
        console.print(f"[red]Could not delete {subscription_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted {subscription_id}[/green]")
