"""Tests for rediscoord.observability.attributes module."""

from rediscoord.observability import attributes
from rediscoord.observability.attributes import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_ATTEMPTS,
    ATTR_LOCK_KEY,
    ATTR_LOCK_TTL_MS,
    ATTR_RATELIMIT_ALGORITHM,
    ATTR_RATELIMIT_KEY,
    ATTR_RATELIMIT_LIMIT,
    ATTR_RATELIMIT_N,
    DB_SYSTEM_REDIS,
)


class TestAttributeConstants:
    """Tests for attribute constant definitions."""

    def test_lock_attributes_have_rediscoord_prefix(self):
        for name in (ATTR_LOCK_KEY, ATTR_LOCK_TTL_MS, ATTR_LOCK_ACQUIRED, ATTR_LOCK_ATTEMPTS):
            assert name.startswith("rediscoord.lock.")

    def test_ratelimit_attributes_have_rediscoord_prefix(self):
        for name in (
            ATTR_RATELIMIT_KEY,
            ATTR_RATELIMIT_N,
            ATTR_RATELIMIT_LIMIT,
            ATTR_RATELIMIT_ALGORITHM,
        ):
            assert name.startswith("rediscoord.ratelimit.")

    def test_database_attributes_follow_otel_conventions(self):
        """Database attributes use the unprefixed OTEL semantic names."""
        assert ATTR_DB_SYSTEM == "db.system"
        assert ATTR_DB_OPERATION == "db.operation"
        assert DB_SYSTEM_REDIS == "redis"

    def test_all_exports_are_unique_strings(self):
        values = [getattr(attributes, name) for name in attributes.__all__]
        assert all(isinstance(value, str) for value in values)
        assert len(values) == len(set(values))
