"""
Integration tests for rediscoord.

These tests require a Redis instance, either via:
- testcontainers (automatic container provisioning)
- docker (the container is started and stopped per test session)

Tests are skipped automatically if required infrastructure is not available.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
