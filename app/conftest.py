"""
Pytest configuration for the settlement engine.

Test databases are built from the app migrations, so the same schema
(constraints and indexes included) is exercised under SQLite and PostgreSQL.
"""

import os
import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (checkout to payout workflows)
    - test_*_service.py, test_workers.py, etc. → integration
    - test_models.py, test_money.py, test_schedules.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    # Filename patterns for each category
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_order_splitter.py",
        "test_payment_recorder.py",
        "test_refund_service.py",
        "test_payout_executor.py",
        "test_payout_scheduler.py",
        "test_reconciliation_service.py",
        "test_store_account_service.py",
        "test_balance_service.py",
        "test_ledger_services.py",
        "test_workers.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_money.py",
        "test_schedules.py",
        "test_state_transitions.py",
        "test_locks.py",
        "test_stripe_adapter.py",
        "test_services.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filepath = str(item.fspath)
        filename = filepath.split("/")[-1]

        # Check patterns in priority order
        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            # Default: integration (safe for Django where most tests hit DB)
            item.add_marker(pytest.mark.integration)
