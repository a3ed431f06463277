"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import os
import pytest

from tests import make_session_factory, make_uow_factory


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "redis: marks tests as requiring Redis (deselect with '-m \"not redis\"')"
    )


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    return make_session_factory()


@pytest.fixture
def uow_factory(session_factory):
    return make_uow_factory(session_factory)


@pytest.fixture(autouse=True)
def no_dry_run(monkeypatch):
    """Make sure a developer's NOTIFICATION_DRY_RUN does not leak into tests."""
    if "NOTIFICATION_DRY_RUN" in os.environ:
        monkeypatch.delenv("NOTIFICATION_DRY_RUN")
