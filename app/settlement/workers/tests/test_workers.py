"""
Tests for settlement Celery workers.

Tasks are executed eagerly with ``.apply()`` against real services and a
mocked gateway.
"""

from decimal import Decimal
from uuid import uuid4

from settlement.exceptions import GatewayUnavailableError, ReconciliationRequiredError
from settlement.ledger import SellerBalance
from settlement.tests.factories import (
    SellerPayoutSettingsFactory,
    StoreFactory,
    credit_store,
)
from settlement.workers import (
    execute_store_payout,
    refresh_seller_balances,
    run_payout_sweep,
    run_scheduled_reconciliation,
)


class TestRunPayoutSweep:
    def test_returns_report(self, store_with_funds, mock_gateway, mock_redis_lock):
        result = run_payout_sweep.apply().get()

        assert result == {"processed": 1, "skipped": 0, "errors": []}

    def test_reports_skipped_stores(self, db, mock_gateway, mock_redis_lock):
        store = StoreFactory()
        SellerPayoutSettingsFactory(store=store)

        result = run_payout_sweep.apply().get()

        assert result["skipped"] == 1


class TestExecuteStorePayout:
    def test_completed(self, store_with_funds, mock_gateway, mock_redis_lock):
        result = execute_store_payout.apply(args=[str(store_with_funds.id)]).get()

        assert result["status"] == "completed"
        assert result["amount"] == "150.00"
        assert "payout_id" in result

    def test_skipped_includes_reason(
        self, store, payout_settings, mock_gateway, mock_redis_lock
    ):
        result = execute_store_payout.apply(args=[str(store.id)]).get()

        assert result["status"] == "skipped"
        assert result["reason"] == "below_minimum"

    def test_failed(self, store_with_funds, mock_gateway, mock_redis_lock):
        mock_gateway.create_payout.side_effect = GatewayUnavailableError("down")

        result = execute_store_payout.apply(args=[str(store_with_funds.id)]).get()

        assert result["status"] == "failed"
        assert result["error"] == "down"

    def test_invalid_uuid(self, db):
        result = execute_store_payout.apply(args=["not-a-valid-uuid"]).get()

        assert result["status"] == "not_found"
        assert result["error"] == "Invalid UUID format"

    def test_unknown_store(self, db, mock_redis_lock):
        result = execute_store_payout.apply(args=[str(uuid4())]).get()

        assert result["status"] == "not_found"

    def test_reconciliation_required_not_retried(self, store_with_funds, mocker):
        mocker.patch(
            "settlement.services.PayoutExecutorService.execute_store_payout",
            side_effect=ReconciliationRequiredError("sent but not recorded"),
        )

        result = execute_store_payout.apply(args=[str(store_with_funds.id)]).get()

        assert result["status"] == "reconciliation_required"
        assert result["error"] == "sent but not recorded"


class TestRefreshSellerBalances:
    def test_heals_drift(self, store):
        credit_store(store, "40.00", "seed")
        SellerBalance.objects.filter(store=store).update(
            available_balance=Decimal("0.00")
        )

        result = refresh_seller_balances.apply().get()

        assert result == {"refreshed_count": 1, "drifted_count": 1, "failed_count": 0}
        assert SellerBalance.objects.get(store=store).available_balance == Decimal("40.00")

    def test_consistent_rows_not_counted_as_drift(self, store):
        credit_store(store, "40.00", "seed")

        result = refresh_seller_balances.apply().get()

        assert result["drifted_count"] == 0


class TestRunScheduledReconciliation:
    def test_completed(self, store, mock_gateway, mock_redis_lock):
        result = run_scheduled_reconciliation.apply(kwargs={"lookback_hours": 48}).get()

        assert result["status"] == "completed"
        assert result["stores_checked"] == 1

    def test_skipped_when_locked(self, db, mock_redis):
        mock_redis.set.return_value = False

        result = run_scheduled_reconciliation.apply().get()

        assert result["status"] == "skipped"

    def test_failed_on_invalid_lookback(self, db):
        result = run_scheduled_reconciliation.apply(kwargs={"lookback_hours": 0}).get()

        assert result["status"] == "failed"
        assert result["error_code"] == "VALIDATION_ERROR"
