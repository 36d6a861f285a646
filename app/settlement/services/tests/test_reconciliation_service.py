"""
Tests for ReconciliationService.

Tests cover:
- Gateway payouts without a local record
- Completed payouts without a ledger debit or missing at the gateway
- Stuck pending payouts
- Balance cache drift auto-healing
- One record per (type, store, reference) across runs
"""

import uuid
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from settlement.adapters import PayoutResult
from settlement.exceptions import GatewayUnavailableError
from settlement.ledger import SellerBalance
from settlement.models import ReconciliationDiscrepancy
from settlement.services import PayoutExecutorService, ReconciliationService
from settlement.state_machines import (
    DiscrepancyResolution,
    DiscrepancyType,
    PayoutStatus,
)
from settlement.tests.factories import (
    SellerPayoutFactory,
    StoreFactory,
    credit_store,
)


def gateway_payout(payout_id="po_gw_1", status="paid", amount_cents=15000, **metadata):
    return PayoutResult(
        id=payout_id,
        amount_cents=amount_cents,
        currency="usd",
        status=status,
        created=timezone.now(),
        metadata=metadata,
    )


def completed_payout(store, provider_payout_id="po_gw_1", **kwargs):
    return SellerPayoutFactory(
        store=store,
        status=PayoutStatus.COMPLETED,
        provider_payout_id=provider_payout_id,
        completed_at=timezone.now(),
        **kwargs,
    )


def discrepancy_types(store):
    return set(
        ReconciliationDiscrepancy.objects.filter(store=store).values_list(
            "discrepancy_type", flat=True
        )
    )


class TestGatewayPayoutUnrecorded:
    def test_flags_unknown_gateway_payout(self, store, mock_gateway):
        mock_gateway.list_payouts.return_value = [gateway_payout()]

        report = ReconciliationService.reconcile_store(store.id).data

        discrepancy = ReconciliationDiscrepancy.objects.get(
            store=store, discrepancy_type=DiscrepancyType.GATEWAY_PAYOUT_UNRECORDED
        )
        assert discrepancy.reference == "po_gw_1"
        assert discrepancy.amount == Decimal("150.00")
        assert discrepancy.resolution == DiscrepancyResolution.OPEN
        assert report.by_type == {DiscrepancyType.GATEWAY_PAYOUT_UNRECORDED: 1}

    def test_links_pending_local_payout_by_metadata(self, store, mock_gateway):
        pending = SellerPayoutFactory(store=store, requested_at=timezone.now())
        mock_gateway.list_payouts.return_value = [
            gateway_payout(seller_payout_id=str(pending.id))
        ]

        ReconciliationService.reconcile_store(store.id)

        discrepancy = ReconciliationDiscrepancy.objects.get(
            store=store, discrepancy_type=DiscrepancyType.GATEWAY_PAYOUT_UNRECORDED
        )
        assert discrepancy.payout_id == pending.id
        assert discrepancy.details["local_status"] == PayoutStatus.PENDING

    def test_ignores_failed_gateway_payouts(self, store, mock_gateway):
        mock_gateway.list_payouts.return_value = [gateway_payout(status="failed")]

        ReconciliationService.reconcile_store(store.id)

        assert discrepancy_types(store) == set()

    def test_recorded_payout_matches(
        self, store_with_funds, mock_gateway, mock_redis_lock
    ):
        PayoutExecutorService.execute_store_payout(store_with_funds.id)
        mock_gateway.list_payouts.return_value = [gateway_payout("po_test_123")]

        report = ReconciliationService.reconcile_store(store_with_funds.id).data

        assert report.discrepancies_found == 0
        assert report.payouts_checked == 1


class TestLocalPayoutChecks:
    def test_missing_ledger_entry(self, store, mock_gateway):
        payout = completed_payout(store)
        mock_gateway.list_payouts.return_value = [gateway_payout()]

        ReconciliationService.reconcile_store(store.id)

        discrepancy = ReconciliationDiscrepancy.objects.get(
            store=store, discrepancy_type=DiscrepancyType.PAYOUT_MISSING_LEDGER_ENTRY
        )
        assert discrepancy.reference == str(payout.id)
        assert discrepancy.details["provider_payout_id"] == "po_gw_1"

    def test_local_payout_missing_at_gateway(self, store, mock_gateway):
        completed_payout(store, provider_payout_id="po_ghost")

        ReconciliationService.reconcile_store(store.id)

        assert DiscrepancyType.LOCAL_PAYOUT_MISSING_AT_GATEWAY in discrepancy_types(store)

    def test_gateway_listing_failure_still_checks_local_records(
        self, store, mock_gateway
    ):
        mock_gateway.list_payouts.side_effect = GatewayUnavailableError("down")
        completed_payout(store)

        report = ReconciliationService.reconcile_store(store.id).data

        assert report.errors == [f"Store {store.id}: down"]
        assert discrepancy_types(store) == {DiscrepancyType.PAYOUT_MISSING_LEDGER_ENTRY}

    def test_stuck_pending_payout(self, store, mock_gateway):
        stuck = SellerPayoutFactory(
            store=store, requested_at=timezone.now() - timedelta(hours=3)
        )
        SellerPayoutFactory(store=store, requested_at=timezone.now())

        ReconciliationService.reconcile_store(store.id)

        discrepancy = ReconciliationDiscrepancy.objects.get(
            store=store, discrepancy_type=DiscrepancyType.PAYOUT_STUCK_PENDING
        )
        assert discrepancy.reference == str(stuck.id)


class TestBalanceCacheDrift:
    def test_drift_is_healed_and_recorded(self, store, mock_gateway):
        credit_store(store, "80.00", "seed")
        SellerBalance.objects.filter(store=store).update(
            available_balance=Decimal("999.00")
        )

        report = ReconciliationService.reconcile_store(store.id).data

        assert report.balances_healed == 1
        cached = SellerBalance.objects.get(store=store)
        assert cached.available_balance == Decimal("80.00")
        discrepancy = ReconciliationDiscrepancy.objects.get(
            store=store, discrepancy_type=DiscrepancyType.BALANCE_CACHE_DRIFT
        )
        assert discrepancy.resolution == DiscrepancyResolution.AUTO_HEALED
        assert discrepancy.resolved_at is not None

    def test_consistent_cache_not_flagged(self, store, mock_gateway):
        credit_store(store, "80.00", "seed")

        report = ReconciliationService.reconcile_store(store.id).data

        assert report.balances_healed == 0
        assert discrepancy_types(store) == set()


class TestRunReconciliation:
    def test_repeated_runs_do_not_duplicate(self, store, mock_gateway, mock_redis_lock):
        mock_gateway.list_payouts.return_value = [gateway_payout()]

        first = ReconciliationService.run_reconciliation().data
        second = ReconciliationService.run_reconciliation().data

        assert first.discrepancies_found == 1
        assert second.discrepancies_found == 0
        assert ReconciliationDiscrepancy.objects.filter(store=store).count() == 1

    def test_checks_only_connected_stores(
        self, store, unconnected_store, mock_gateway, mock_redis_lock
    ):
        report = ReconciliationService.run_reconciliation().data

        assert report.stores_checked == 1
        mock_gateway.list_payouts.assert_called_once()
        assert mock_gateway.list_payouts.call_args.args[0] == store.stripe_account_id

    def test_store_failure_isolated(self, db, mock_gateway, mock_redis_lock, mocker):
        first = StoreFactory()
        StoreFactory()
        original = ReconciliationService._reconcile_store.__func__

        def reconcile(cls, store, report, lookback_hours):
            if store.id == first.id:
                raise RuntimeError("boom")
            return original(cls, store, report, lookback_hours)

        mocker.patch.object(
            ReconciliationService,
            "_reconcile_store",
            classmethod(reconcile),
        )

        report = ReconciliationService.run_reconciliation().data

        assert report.errors == [f"Store {first.id}: boom"]
        assert report.stores_checked == 1

    def test_concurrent_run_rejected(self, db, mock_redis):
        mock_redis.set.return_value = False

        result = ReconciliationService.run_reconciliation()

        assert result.error_code == "RECONCILIATION_IN_PROGRESS"

    def test_invalid_lookback(self, db):
        result = ReconciliationService.run_reconciliation(lookback_hours=0)

        assert result.error_code == "VALIDATION_ERROR"

    def test_unknown_store(self, db, mock_gateway):
        result = ReconciliationService.reconcile_store(uuid.uuid4())

        assert result.error_code == "NOT_FOUND"
