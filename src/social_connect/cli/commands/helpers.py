"""Shared helpers for CLI commands."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console

from social_connect.config.settings import ConfigurationError, Settings, get_settings
from social_connect.container import ServiceContainer
from social_connect.core.logging import setup_logging
from social_connect.exceptions import SocialConnectError


T = TypeVar("T")

console = Console(stderr=True)


def load_settings() -> Settings:
    """Load settings or exit with a readable error."""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    setup_logging(level=settings.server.log_level, json_logs=settings.server.log_json)
    return settings


def run_with_container(action: Callable[[ServiceContainer], Awaitable[T]]) -> T:
    """Build a container, run ``action`` with it, and close it again."""
    settings = load_settings()

    async def runner() -> T:
        container = ServiceContainer(settings)
        await container.start()
        try:
            return await action(container)
        finally:
            await container.close()

    try:
        return asyncio.run(runner())
    except SocialConnectError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1) from e
