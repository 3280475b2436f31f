"""Social Connect command line interface."""

import typer

from social_connect import __version__
from social_connect.cli.commands.accounts import list_accounts, refresh_due
from social_connect.cli.commands.config import keygen, show_config
from social_connect.cli.commands.serve import serve


app = typer.Typer(
    name="social-connect",
    help="OAuth 2.0 PKCE account connection and token lifecycle service",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"social-connect {__version__}")
        raise typer.Exit()


@app.callback()
def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Social Connect operational commands."""


app.command(name="serve")(serve)
app.command(name="keygen")(keygen)
app.command(name="config")(show_config)
app.command(name="accounts")(list_accounts)
app.command(name="refresh-due")(refresh_due)


def main() -> None:
    """Entry point for the ``social-connect`` script."""
    app()
