"""Validation helpers for configuration and request values."""

import re

# RFC 6749 section 3.3: scope-token = 1*( %x21 / %x23-5B / %x5D-7E )
_SCOPE_TOKEN = re.compile(r"^[\x21\x23-\x5B\x5D-\x7E]+$")

MAX_SCOPES = 32


def parse_scopes(value: str | list[str], max_items: int = MAX_SCOPES) -> list[str]:
    """Parse a scope list given as a list or a space/comma separated string.

    Duplicates are dropped while keeping the first occurrence order.

    Args:
        value: Scope string (``"a b"`` or ``"a,b"``) or list of scopes
        max_items: Maximum number of scopes allowed

    Returns:
        List of scope tokens

    Raises:
        ValueError: If a scope contains characters OAuth does not allow or
            there are too many scopes
    """
    if isinstance(value, str):
        items = re.split(r"[\s,]+", value)
    else:
        items = list(value)

    scopes: list[str] = []
    for item in items:
        scope = item.strip()
        if not scope or scope in scopes:
            continue
        if not _SCOPE_TOKEN.match(scope):
            raise ValueError(f"Invalid OAuth scope: {scope!r}")
        scopes.append(scope)

    if len(scopes) > max_items:
        raise ValueError(f"Too many scopes: got {len(scopes)}, maximum is {max_items}")

    return scopes
