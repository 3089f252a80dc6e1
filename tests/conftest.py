"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "db: marks tests as requiring PostgreSQL (deselect with '-m \"not db\"')"
    )


@pytest.fixture(autouse=True)
def no_dry_run(monkeypatch):
    """Delivery tests must see real request handling unless they opt in."""
    monkeypatch.delenv("NOTIFICATION_DRY_RUN", raising=False)


@pytest.fixture(scope="session")
def test_db_url():
    """PostgreSQL URL for `db` tests; skips when the server is unreachable."""
    from tests import check_db_available, get_test_db_url

    if not check_db_available():
        pytest.skip("PostgreSQL test database not available")
    return get_test_db_url()
