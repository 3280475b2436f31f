"""Database package for SQLite persistence."""

from social_connect.db.engine import Database, get_db_url
from social_connect.db.models import ConnectionStatus, OAuthVersion, SocialAccount


__all__ = [
    "ConnectionStatus",
    "Database",
    "OAuthVersion",
    "SocialAccount",
    "get_db_url",
]
