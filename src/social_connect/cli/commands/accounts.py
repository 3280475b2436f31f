"""Operational commands for linked accounts."""

import orjson
import typer
from rich.console import Console
from rich.table import Table

from social_connect.cli.commands.helpers import run_with_container
from social_connect.container import ServiceContainer
from social_connect.db.models import ConnectionStatus
from social_connect.schemas import TokenHealth
from social_connect.services.token_lifecycle import RefreshSweepResult


console = Console()

_STATUS_STYLES = {
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.EXPIRED: "yellow",
    ConnectionStatus.ERROR: "red",
    ConnectionStatus.DISCONNECTED: "dim",
    ConnectionStatus.PENDING: "cyan",
}


def list_accounts(
    user_id: str = typer.Argument(..., help="Application user id"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
) -> None:
    """Show token health for every account of a user."""

    async def action(container: ServiceContainer) -> list[TokenHealth]:
        return await container.manager.list_token_health(user_id)

    health = run_with_container(action)

    if as_json:
        payload = [item.model_dump(mode="json") for item in health]
        typer.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())
        return

    if not health:
        console.print(f"[yellow]No accounts found for user {user_id}.[/yellow]")
        return

    table = Table(title=f"Accounts for {user_id}")
    table.add_column("Account ID", style="cyan")
    table.add_column("Platform")
    table.add_column("Status")
    table.add_column("Expires")
    table.add_column("Errors", justify="right")
    table.add_column("Refresh attempts", justify="right")
    table.add_column("Last error")

    for item in health:
        style = _STATUS_STYLES.get(item.connection_status, "white")
        table.add_row(
            item.account_id,
            str(item.platform_id),
            f"[{style}]{item.connection_status}[/{style}]",
            item.token_expires_at.strftime("%Y-%m-%d %H:%M UTC")
            if item.token_expires_at
            else "-",
            str(item.error_count),
            str(item.token_refresh_attempts),
            item.last_error or "-",
        )

    console.print(table)


def refresh_due(
    buffer_seconds: int | None = typer.Option(
        None,
        "--buffer",
        "-b",
        help="Refresh tokens expiring within this many seconds (default from settings)",
    ),
) -> None:
    """Run one refresh sweep over accounts whose tokens are about to expire."""

    async def action(container: ServiceContainer) -> RefreshSweepResult:
        buffer = (
            container.settings.scheduler.refresh_buffer_seconds
            if buffer_seconds is None
            else buffer_seconds
        )
        return await container.manager.refresh_due_accounts(buffer)

    result = run_with_container(action)
    console.print(
        f"Checked [bold]{result['checked']}[/bold] accounts: "
        f"[green]{result['refreshed']} refreshed[/green], "
        f"{result['skipped']} skipped, "
        f"[red]{result['failed']} failed[/red]"
    )
    if result["failed"]:
        raise typer.Exit(1)
