"""HTTP adapter for the Social Connect service."""

from social_connect.api.app import create_app, get_app


__all__ = ["create_app", "get_app"]
