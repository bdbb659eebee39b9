#!/usr/bin/env python3
"""
Test suite configuration and utilities.

All tests can be run with standard Python tools:

    # Run all tests (unit + Redis if available)
    python -m pytest tests/ -v

    # Run only unit tests (no Redis required)
    python -m pytest tests/ -v -m "not redis"

    # Using unittest
    python -m unittest discover tests -v

Redis Setup:
    The Redis integration tests run against TEST_REDIS_URL (default db 1 on
    localhost, so a development db 0 is never touched) and are skipped when
    it cannot be reached.
"""

import os

# Redis configuration
TEST_REDIS_URL = os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/1")

# Check if we should force skip Redis tests
SKIP_REDIS_TESTS = os.environ.get("SKIP_REDIS_TESTS", "false").lower() == "true"


def is_redis_available() -> bool:
    """
    Check if the test Redis is accessible.

    Returns True if a PING succeeds, False otherwise.
    """
    if SKIP_REDIS_TESTS:
        return False

    try:
        from redis import Redis

        return bool(Redis.from_url(TEST_REDIS_URL, socket_connect_timeout=1).ping())
    except Exception:
        return False


def get_test_redis_url() -> str:
    """Get the test Redis URL."""
    return TEST_REDIS_URL
