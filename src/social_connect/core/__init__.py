"""Core constants and logging setup."""
