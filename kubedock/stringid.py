"""Helpers for generating and recognising string identifiers."""

from __future__ import annotations

import re
import secrets

SHORT_LEN = 12

_VALID_SHORT_ID = re.compile(r"[a-f0-9]{12}")
_VALID_HEX = re.compile(r"[a-f0-9]{64}")


def is_short_id(id: str) -> bool:
    """Return True if the string looks like a short identifier."""
    return _VALID_SHORT_ID.fullmatch(id) is not None


def truncate_id(id: str) -> str:
    """Return the shorthand form of an identifier.

    Anything up to and including the first colon (such as a ``sha256:``
    prefix) is dropped, and the rest is cut to the short length.
    """
    _, sep, rest = id.partition(":")
    if sep:
        id = rest
    return id[:SHORT_LEN]


def generate_random_id() -> str:
    """Return a random 64 character hex identifier.

    Identifiers whose short form is entirely numeric are rejected, as they
    cause trouble when used as host names.
    """
    while True:
        id = secrets.token_hex(32)
        if not truncate_id(id).isdigit():
            return id


def validate_id(id: str) -> None:
    """Raise ValueError if the string is not a valid full image identifier."""
    if _VALID_HEX.fullmatch(id) is None:
        raise ValueError(f'image ID "{id}" is invalid')