"""
Pytest fixtures for settlement tests.

Gateway calls never leave the process: ``mock_gateway`` injects a
MagicMock adapter into every service that talks to the gateway, and
``mock_redis_lock`` replaces the Redis connection behind DistributedLock.

Usage:
    def test_payout(store_with_funds, mock_gateway, mock_redis_lock):
        mock_gateway.retrieve_available_balance.return_value = 15000
        result = PayoutExecutorService.execute_store_payout(store_with_funds.id)
"""

import pytest
from django.utils import timezone

from settlement.adapters import (
    ChargeResult,
    ConnectedAccountResult,
    PayoutResult,
    RefundResult,
)
from settlement.inventory import InventoryResult, set_inventory_gateway
from settlement.services import (
    PaymentRecorderService,
    PayoutExecutorService,
    ReconciliationService,
    RefundService,
    StoreAccountService,
)
from settlement.tests.factories import (
    SellerPayoutSettingsFactory,
    StoreFactory,
    credit_store,
)

GATEWAY_SERVICES = [
    PaymentRecorderService,
    PayoutExecutorService,
    ReconciliationService,
    RefundService,
    StoreAccountService,
]


# =============================================================================
# Infrastructure Mocks
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for distributed lock tests.

    Returns a MagicMock configured for basic lock operations.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.get.return_value = None
    mock_client.delete.return_value = 1
    mock_client.eval.return_value = 1

    mocker.patch(
        "settlement.locks.get_redis_connection",
        return_value=mock_client,
    )
    return mock_client


@pytest.fixture
def mock_redis_lock(mock_redis):
    """Alias used by service tests that only need locks to succeed."""
    return mock_redis


def _refund_result(payment_intent_id, idempotency_key, amount_cents, metadata=None):
    return RefundResult(
        id=f"re_{idempotency_key}",
        amount_cents=amount_cents,
        currency="usd",
        status="succeeded",
        payment_intent_id=payment_intent_id,
        metadata=metadata or {},
    )


@pytest.fixture
def mock_gateway(mocker):
    """
    Inject a MagicMock gateway adapter into every gateway-facing service.

    Defaults describe a healthy account: payouts and refunds succeed and
    the account holds $1,000.00 available.
    """
    adapter = mocker.MagicMock()

    adapter.retrieve_available_balance.return_value = 100000
    adapter.create_payout.return_value = PayoutResult(
        id="po_test_123",
        amount_cents=15000,
        currency="usd",
        status="pending",
        created=timezone.now(),
    )
    adapter.create_refund.side_effect = _refund_result
    adapter.create_destination_charge.return_value = ChargeResult(
        id="pi_test_charge",
        status="requires_payment_method",
        amount_cents=10000,
        currency="usd",
        client_secret="pi_test_charge_secret",
    )
    adapter.create_connected_account.return_value = ConnectedAccountResult(
        id="acct_new_123",
        charges_enabled=False,
        payouts_enabled=False,
        details_submitted=False,
    )
    adapter.list_payouts.return_value = []

    for service in GATEWAY_SERVICES:
        service.set_gateway_adapter(adapter)
    yield adapter
    for service in GATEWAY_SERVICES:
        service.set_gateway_adapter(None)


@pytest.fixture
def inventory_gateway(mocker):
    """Inject an inventory gateway whose calls all succeed."""
    gateway = mocker.MagicMock()
    gateway.listing_exists.return_value = True
    gateway.adjust_inventory.return_value = InventoryResult(success=True)
    set_inventory_gateway(gateway)
    yield gateway
    set_inventory_gateway(None)


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def store(db):
    """Store with a connected account that can receive payouts."""
    return StoreFactory()


@pytest.fixture
def unconnected_store(db):
    """Store that has not started gateway onboarding."""
    return StoreFactory(unconnected=True, name="Unconnected Shop")


@pytest.fixture
def payout_settings(store):
    """Automatic weekly payout settings with a $20 minimum."""
    return SellerPayoutSettingsFactory(store=store)


@pytest.fixture
def store_with_funds(store, payout_settings):
    """Store with $150.00 cleared in its ledger and an automatic payout due."""
    credit_store(store, "150.00", f"seed:{store.id}")
    return store
