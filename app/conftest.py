"""
Project-wide pytest configuration.

Configures test settings and auto-marks tests. App-specific fixtures are
defined in each app's tests/conftest.py.
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

    # Never call the live FX provider from tests
    settings.FIXER_ACCESS_KEY = ""

    # Local memory cache instead of Redis; locks are mocked separately
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
    }


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full settlement workflows)
    - test_services.py, test_settlement.py, test_tasks.py, etc. → integration
    - test_models.py, test_locks.py, test_adapters.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_services.py",
        "test_tasks.py",
        "test_settlement.py",
        "test_balances.py",
        "test_fees.py",
        "test_currency.py",
        "test_refunds.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_managers.py",
        "test_adapters.py",
        "test_types.py",
        "test_exceptions.py",
        "test_state_transitions.py",
        "test_locks.py",
        "test_soft_delete_mixin.py",
    ]

    for item in items:
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
