"""Repository layer for database operations."""

from social_connect.db.repositories.social_account_repo import SocialAccountRepository


__all__ = ["SocialAccountRepository"]
