"""Configuration and key management commands."""

import orjson
import typer
from rich.console import Console

from social_connect.auth.cipher import generate_key
from social_connect.cli.commands.helpers import load_settings


err_console = Console(stderr=True)


def keygen() -> None:
    """Print a new token-encryption key."""
    typer.echo(generate_key())
    err_console.print(
        "[yellow]Set it as SOCIAL_CONNECT_SECURITY__TOKEN_ENCRYPTION_KEY. "
        "Changing the key makes stored tokens unreadable.[/yellow]"
    )


def show_config() -> None:
    """Print the effective configuration with secrets masked."""
    settings = load_settings()
    typer.echo(
        orjson.dumps(settings.model_dump_safe(), option=orjson.OPT_INDENT_2).decode()
    )
