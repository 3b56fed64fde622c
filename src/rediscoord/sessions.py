"""
User sessions stored in Redis.

Each session is a JSON document under ``<prefix>:<id>`` that expires with the
session. A per-user set ``<prefix>:user:sessions:<user_id>`` indexes the ids
so a user's sessions can be listed or revoked together.

Session documents expire on their own while their ids stay in the index
until :meth:`SessionStore.prune_index` or a delete removes them. Readers
skip ids whose document is gone.

Example:
    >>> store = SessionStore(client)
    >>> session = await store.create("user-42", ip_address="203.0.113.7")
    >>> same = await store.get(session.id)
    >>> await store.delete_by_user("user-42")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rediscoord.exceptions import (
    STORE_ERRORS,
    CoordinationTimeoutError,
    KeyNotFoundError,
    SerializationError,
    StoreError,
    from_redis_error,
)
from rediscoord.tokens import generate_session_id

if TYPE_CHECKING:
    from rediscoord.client import RedisClient

DEFAULT_SESSION_PREFIX = "session"
DEFAULT_SESSION_TTL = 30 * 24 * 3600.0
"""Default session lifetime in seconds (30 days)."""

DEFAULT_PRUNE_TIMEOUT = 5.0


def _millis(seconds: float) -> int:
    return max(1, int(seconds * 1000))


class Session(BaseModel):
    """
    A user session.

    Attributes:
        id: Opaque random session id
        user_id: Owner of the session
        device_id: Client device identifier, if known
        device_info: Free-form device description (e.g., user agent)
        ip_address: Client address at creation
        created_at: Creation time (UTC)
        last_active: Last time the session was read or updated
        expires_at: When the stored document expires
        data: Arbitrary JSON-compatible application data
    """

    model_config = ConfigDict(
        extra="ignore",  # tolerate fields written by newer versions
    )

    id: str
    user_id: str
    device_id: str | None = None
    device_info: str | None = None
    ip_address: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_active: datetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime
    data: Any = None

    @property
    def is_expired(self) -> bool:
        return datetime.now(UTC) >= self.expires_at


class SessionStore:
    """
    Creates, reads and revokes sessions.

    Example:
        >>> store = SessionStore(client, default_ttl=7 * 24 * 3600)
        >>> session = await store.create("user-42", device_id="phone-1")
        >>> sessions = await store.list_by_user("user-42")
        >>> removed = await store.prune_index("user-42")
    """

    def __init__(
        self,
        client: RedisClient,
        *,
        key_prefix: str = DEFAULT_SESSION_PREFIX,
        default_ttl: float = DEFAULT_SESSION_TTL,
        id_factory: Callable[[], str] = generate_session_id,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the session store.

        Args:
            client: Redis client shared with other components
            key_prefix: Prefix for session keys (default: "session")
            default_ttl: Session lifetime in seconds (default: 30 days)
            id_factory: Source of session ids
            logger: Optional logger (defaults to this module's logger)

        Raises:
            ValueError: If default_ttl is not positive
        """
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        self._client = client
        self._key_prefix = key_prefix
        self._default_ttl = default_ttl
        self._id_factory = id_factory
        self._logger = logger or logging.getLogger(__name__)

    def session_key(self, session_id: str) -> str:
        return f"{self._key_prefix}:{session_id}"

    def user_sessions_key(self, user_id: str) -> str:
        return f"{self._key_prefix}:user:sessions:{user_id}"

    @staticmethod
    def _encode(session: Session) -> str:
        try:
            return session.model_dump_json(exclude_none=True)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to encode session: {e}") from e

    @staticmethod
    def _decode(raw: str | bytes) -> Session:
        try:
            return Session.model_validate_json(raw)
        except ValidationError as e:
            raise SerializationError(f"Failed to decode session: {e}") from e

    async def _index_ttl_ms(self, index_key: str, ttl_ms: int) -> int:
        # Never shorten the index below a longer-lived session already in it
        try:
            current = await self._client.redis.pttl(index_key)
        except STORE_ERRORS as e:
            self._logger.error("Session index TTL error: key=%s, error=%s", index_key, e)
            raise from_redis_error(e) from e
        if current is not None and current > ttl_ms:
            return int(current)
        return ttl_ms

    async def create(
        self,
        user_id: str,
        *,
        ttl: float | None = None,
        device_id: str | None = None,
        device_info: str | None = None,
        ip_address: str | None = None,
        data: Any = None,
    ) -> Session:
        """
        Create and store a new session.

        Args:
            user_id: Owner of the session
            ttl: Lifetime in seconds (defaults to default_ttl)
            device_id: Optional device identifier
            device_info: Optional device description
            ip_address: Optional client address
            data: Optional JSON-compatible application data

        Returns:
            The stored Session

        Raises:
            ValueError: If ttl is not positive
            SerializationError: If data is not JSON-compatible
            StoreError: If the Redis round trip failed
        """
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"Session TTL must be positive, got {ttl}")

        now = datetime.now(UTC)
        session = Session(
            id=self._id_factory(),
            user_id=user_id,
            device_id=device_id,
            device_info=device_info,
            ip_address=ip_address,
            created_at=now,
            last_active=now,
            expires_at=now + timedelta(seconds=ttl),
            data=data,
        )
        document = self._encode(session)

        ttl_ms = _millis(ttl)
        index_key = self.user_sessions_key(user_id)
        index_ttl_ms = await self._index_ttl_ms(index_key, ttl_ms)

        pipe = self._client.pipeline(transaction=False)
        pipe.set(self.session_key(session.id), document, px=ttl_ms)
        pipe.sadd(index_key, session.id)
        pipe.pexpire(index_key, index_ttl_ms)
        try:
            await pipe.execute()
        except STORE_ERRORS as e:
            self._logger.error(
                "Session create error: session_id=%s, user_id=%s, error=%s",
                session.id,
                user_id,
                e,
            )
            raise from_redis_error(e) from e

        self._logger.debug(
            "Session created: session_id=%s, user_id=%s, ttl=%s", session.id, user_id, ttl
        )
        return session

    async def get(self, session_id: str, *, touch: bool = True) -> Session:
        """
        Load a session.

        Args:
            session_id: Session id
            touch: Update ``last_active`` (best effort; failures are logged)

        Raises:
            KeyNotFoundError: If the session does not exist, has expired, or
                was deleted while being touched
            SerializationError: If the stored document is corrupt
            StoreError: If the Redis round trip failed
        """
        key = self.session_key(session_id)
        try:
            raw = await self._client.redis.get(key)
        except STORE_ERRORS as e:
            self._logger.error("Session get error: session_id=%s, error=%s", session_id, e)
            raise from_redis_error(e) from e

        if raw is None:
            raise KeyNotFoundError(key, f"Session not found: {session_id}")

        session = self._decode(raw)
        if touch:
            session.last_active = datetime.now(UTC)
            try:
                await self._save(session)
            except KeyNotFoundError:
                self._logger.debug("Session revoked during touch: session_id=%s", session_id)
                raise
            except StoreError as e:
                self._logger.warning(
                    "Failed to update session last_active: session_id=%s, error=%s",
                    session_id,
                    e,
                )
        return session

    async def _save(self, session: Session) -> None:
        now = datetime.now(UTC)
        remaining = (session.expires_at - now).total_seconds()
        if remaining <= 0:
            remaining = self._default_ttl
            session.expires_at = now + timedelta(seconds=remaining)

        key = self.session_key(session.id)
        try:
            # XX: never resurrect a document deleted since it was read
            written = await self._client.redis.set(
                key, self._encode(session), px=_millis(remaining), xx=True
            )
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e
        if not written:
            raise KeyNotFoundError(key, f"Session not found: {session.id}")

    async def update(self, session: Session) -> None:
        """
        Store changes to a session, keeping its expiry.

        A session whose ``expires_at`` already passed locally but whose
        document still exists is renewed for ``default_ttl``.

        Raises:
            KeyNotFoundError: If the session was deleted or has expired
        """
        session.last_active = datetime.now(UTC)
        await self._save(session)

    async def delete(self, session_id: str) -> None:
        """Delete a session and drop it from its user's index. Missing is a no-op."""
        try:
            session = await self.get(session_id, touch=False)
        except KeyNotFoundError:
            return

        pipe = self._client.pipeline(transaction=False)
        pipe.delete(self.session_key(session_id))
        pipe.srem(self.user_sessions_key(session.user_id), session_id)
        try:
            await pipe.execute()
        except STORE_ERRORS as e:
            self._logger.error("Session delete error: session_id=%s, error=%s", session_id, e)
            raise from_redis_error(e) from e

        self._logger.debug("Session deleted: session_id=%s", session_id)

    async def _members(self, index_key: str) -> list[str]:
        try:
            members = await self._client.redis.smembers(index_key)
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e
        return sorted(members)

    async def delete_by_user(self, user_id: str) -> int:
        """
        Revoke every session of a user.

        Returns:
            Number of session documents deleted
        """
        index_key = self.user_sessions_key(user_id)
        session_ids = await self._members(index_key)
        if not session_ids:
            return 0

        pipe = self._client.pipeline(transaction=False)
        pipe.delete(*(self.session_key(session_id) for session_id in session_ids))
        pipe.delete(index_key)
        try:
            deleted, _ = await pipe.execute()
        except STORE_ERRORS as e:
            self._logger.error("Session delete by user error: user_id=%s, error=%s", user_id, e)
            raise from_redis_error(e) from e

        self._logger.debug("Sessions deleted by user: user_id=%s, count=%d", user_id, deleted)
        return int(deleted)

    async def list_by_user(self, user_id: str) -> list[Session]:
        """
        List a user's live sessions, oldest first.

        Ids whose document has expired are skipped (see :meth:`prune_index`).
        Corrupt documents are logged and skipped.
        """
        session_ids = await self._members(self.user_sessions_key(user_id))
        if not session_ids:
            return []

        try:
            documents = await self._client.redis.mget(
                [self.session_key(session_id) for session_id in session_ids]
            )
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e

        sessions: list[Session] = []
        for session_id, raw in zip(session_ids, documents, strict=True):
            if raw is None:
                continue
            try:
                sessions.append(self._decode(raw))
            except SerializationError as e:
                self._logger.warning(
                    "Failed to decode session: session_id=%s, error=%s", session_id, e
                )
        sessions.sort(key=lambda session: session.created_at)
        return sessions

    async def exists(self, session_id: str) -> bool:
        try:
            count = await self._client.redis.exists(self.session_key(session_id))
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e
        return int(count) > 0

    async def extend(self, session_id: str, ttl: float) -> Session:
        """
        Push a session's expiry to ``ttl`` seconds from now.

        The user index is lengthened too when it would otherwise expire first.

        Raises:
            ValueError: If ttl is not positive
            KeyNotFoundError: If the session does not exist
        """
        if ttl <= 0:
            raise ValueError(f"Session TTL must be positive, got {ttl}")

        session = await self.get(session_id, touch=False)
        now = datetime.now(UTC)
        session.expires_at = now + timedelta(seconds=ttl)
        session.last_active = now
        await self._save(session)

        index_key = self.user_sessions_key(session.user_id)
        ttl_ms = _millis(ttl)
        if await self._index_ttl_ms(index_key, ttl_ms) == ttl_ms:
            try:
                await self._client.redis.pexpire(index_key, ttl_ms)
            except STORE_ERRORS as e:
                raise from_redis_error(e) from e
        return session

    async def count(self, user_id: str) -> int:
        """
        Number of ids in a user's index.

        Includes ids whose document already expired until the index is pruned.
        """
        try:
            return int(await self._client.redis.scard(self.user_sessions_key(user_id)))
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e

    async def prune_index(
        self,
        user_id: str,
        *,
        timeout: float = DEFAULT_PRUNE_TIMEOUT,
    ) -> int:
        """
        Remove ids of expired sessions from a user's index.

        Runs in the caller's task and is bounded by ``timeout``; call it from
        a periodic job or after :meth:`list_by_user`.

        Returns:
            Number of ids removed

        Raises:
            CoordinationTimeoutError: If the cleanup did not finish in time
            StoreError: If a Redis round trip failed
        """
        index_key = self.user_sessions_key(user_id)
        try:
            removed = await asyncio.wait_for(self._prune(index_key), timeout=timeout)
        except TimeoutError as e:
            raise CoordinationTimeoutError(
                f"Session index prune timed out after {timeout}s: user_id={user_id}"
            ) from e

        if removed:
            self._logger.debug(
                "Session index pruned: user_id=%s, removed=%d", user_id, removed
            )
        return removed

    async def _prune(self, index_key: str) -> int:
        session_ids = await self._members(index_key)
        if not session_ids:
            return 0

        pipe = self._client.pipeline(transaction=False)
        for session_id in session_ids:
            pipe.exists(self.session_key(session_id))
        try:
            present = await pipe.execute()
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e

        expired = [
            session_id
            for session_id, count in zip(session_ids, present, strict=True)
            if not count
        ]
        if not expired:
            return 0

        try:
            return int(await self._client.redis.srem(index_key, *expired))
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e


__all__ = [
    "DEFAULT_SESSION_PREFIX",
    "DEFAULT_SESSION_TTL",
    "DEFAULT_PRUNE_TIMEOUT",
    "Session",
    "SessionStore",
]
