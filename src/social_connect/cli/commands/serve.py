"""Run the HTTP API with uvicorn."""

import typer
import uvicorn
from rich.console import Console

from social_connect.cli.commands.helpers import load_settings


console = Console()


def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Start the Social Connect API server."""
    settings = load_settings()
    bind_host = host or settings.server.host
    bind_port = port or settings.server.port

    console.print(
        f"[green]Starting Social Connect on[/green] http://{bind_host}:{bind_port}"
    )
    uvicorn.run(
        "social_connect.api.app:get_app",
        factory=True,
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_level=settings.server.log_level.lower(),
        access_log=False,
    )
