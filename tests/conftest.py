"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest

# Environment overrides that change config loading or force the log-only channel
NOTIFICATION_ENV_VARS = (
    'NOTIFICATION_DRY_RUN',
    'NOTIFICATION_CONFIG',
    'FIREBASE_PROJECT_ID',
    'GOOGLE_APPLICATION_CREDENTIALS',
    'REDIS_URL',
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "redis: marks tests as requiring Redis (deselect with '-m \"not redis\"')"
    )


@pytest.fixture(autouse=True)
def clear_notification_env(monkeypatch):
    """Run every test without the developer's notification environment overrides."""
    for name in NOTIFICATION_ENV_VARS:
        monkeypatch.delenv(name, raising=False)

