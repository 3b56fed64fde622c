"""
Distributed lock utilities for rediscoord.

Locks are useful for:
- Ensuring only one instance runs a scheduled job
- Serializing read-modify-write cycles on shared records
- Coordinating one-off operations such as migrations

Example:
    >>> from rediscoord.locks import Locker
    >>>
    >>> locker = Locker(client)
    >>>
    >>> # Single attempt
    >>> lock = await locker.try_acquire("cutover:tenant-123")
    >>> if lock is None:
    ...     print("Another instance is performing cutover")
    >>>
    >>> # Retrying with a deadline
    >>> try:
    ...     async with locker.hold("cutover:tenant-123", timeout=5.0):
    ...         await perform_cutover()
    ... except LockTimeoutError:
    ...     print("Gave up waiting")
"""

from rediscoord.locks.redis import (
    DEFAULT_LOCK_PREFIX,
    DEFAULT_LOCK_TTL,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY,
    Lock,
    Locker,
    LockState,
)

__all__ = [
    "DEFAULT_LOCK_PREFIX",
    "DEFAULT_LOCK_TTL",
    "DEFAULT_RETRY_COUNT",
    "DEFAULT_RETRY_DELAY",
    "Lock",
    "Locker",
    "LockState",
]
