"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # CACHES is swapped to local memory by settings.TESTING; locks are mocked
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full money-flow journeys)
    - test_*_service.py, test_workers.py, etc. → integration
    - test_models.py, test_refund_calculator.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_escrow_service.py",
        "test_distribution_service.py",
        "test_payout_service.py",
        "test_tax_service.py",
        "test_wallet_ledger.py",
        "test_workers.py",
        "test_platform_config.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_refund_calculator.py",
        "test_filters.py",
        "test_locks.py",
        "test_adapters.py",
        "test_cache.py",
        "test_services.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def _clear_default_cache():
    """
    Start every test with an empty cache.

    Test rollbacks do not fire post_delete, so a cached platform policy
    would otherwise leak between tests.
    """
    from django.core.cache import caches

    caches["default"].clear()
    yield
    caches["default"].clear()
