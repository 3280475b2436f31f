"""Configuration package."""

from social_connect.config.settings import (
    ConfigurationError,
    ProviderSettings,
    Settings,
    TokenSettings,
    get_settings,
)


__all__ = [
    "ConfigurationError",
    "ProviderSettings",
    "Settings",
    "TokenSettings",
    "get_settings",
]
