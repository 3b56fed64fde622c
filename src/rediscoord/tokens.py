"""
Secure random identifiers.

Lock owner tokens and session ids are produced by small factories so that
components can receive them as constructor dependencies and tests can swap in
deterministic ones.

Example:
    >>> from itertools import count
    >>> ids = count(1)
    >>> locker = Locker(client, token_factory=lambda: f"owner-{next(ids)}")
"""

from __future__ import annotations

import secrets
from collections.abc import Callable

TokenFactory = Callable[[], str]
"""Zero-argument callable returning a fresh unique token."""

OWNER_TOKEN_BYTES = 16
"""Entropy of a lock owner token (128 bits)."""

SESSION_ID_BYTES = 32
"""Entropy of a session id (256 bits)."""


def generate_owner_token() -> str:
    """
    Generate a token identifying one lock acquisition attempt.

    Returns:
        32 hex characters from the OS CSPRNG
    """
    return secrets.token_hex(OWNER_TOKEN_BYTES)


def generate_session_id() -> str:
    """Generate a session id (64 hex characters)."""
    return secrets.token_hex(SESSION_ID_BYTES)


__all__ = [
    "TokenFactory",
    "OWNER_TOKEN_BYTES",
    "SESSION_ID_BYTES",
    "generate_owner_token",
    "generate_session_id",
]
