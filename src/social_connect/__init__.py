"""Social Connect - OAuth 2.0 PKCE account linking and token lifecycle."""

__version__ = "0.1.0"


__all__ = ["__version__"]
