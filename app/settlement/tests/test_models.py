"""
Tests for settlement model behavior and database constraints.
"""

from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction

from settlement.exceptions import SettlementError
from settlement.ledger import SellerBalanceEntry
from settlement.models import ReconciliationDiscrepancy, Store
from settlement.state_machines import (
    BalanceEntryType,
    DiscrepancyResolution,
    DiscrepancyType,
    OnboardingStatus,
    OrderPaymentStatus,
    OrderStatus,
    PaymentStatus,
)
from settlement.tests.factories import (
    OrderFactory,
    OrderItemFactory,
    OrderPaymentFactory,
    StoreFactory,
    credit_store,
)


class TestStore:
    def test_connected_store_is_payout_capable(self, db):
        store = StoreFactory()

        assert store.has_payment_destination is True
        assert store.is_payout_capable is True

    def test_unconnected_store_has_no_destination(self, db):
        store = StoreFactory(unconnected=True)

        assert store.has_payment_destination is False
        assert store.is_payout_capable is False

    def test_onboarding_incomplete_is_not_payout_capable(self, db):
        store = StoreFactory(onboarding_status=OnboardingStatus.IN_PROGRESS)

        assert store.has_payment_destination is True
        assert store.is_payout_capable is False

    def test_payouts_disabled_is_not_payout_capable(self, db):
        store = StoreFactory(payouts_enabled=False)

        assert store.is_payout_capable is False

    def test_save_increments_version(self, db):
        store = StoreFactory()
        assert store.version == 1

        store.name = "Renamed"
        store.save()
        store.save()

        assert store.version == 3
        assert Store.objects.get(id=store.id).version == 3


class TestOrder:
    def test_negative_total_rejected_by_constraint(self, db):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                OrderFactory(total=Decimal("-1.00"))

    def test_item_quantity_must_be_positive(self, db):
        order = OrderFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                OrderItemFactory(order=order, quantity=0)

    def test_mark_fulfilled_completes_paid_order(self, db):
        order = OrderFactory(payment_status=PaymentStatus.PAID)

        order.mark_fulfilled()

        assert order.is_fulfilled
        assert order.status == OrderStatus.COMPLETED

    def test_mark_fulfilled_leaves_unpaid_order_open(self, db):
        order = OrderFactory()

        order.mark_fulfilled()

        assert order.status == OrderStatus.OPEN

    def test_archive_replaces_deletion(self, db):
        order = OrderFactory()

        order.archive()
        order.save()

        assert order.status == OrderStatus.ARCHIVED
        assert order.archived_at is not None

    def test_payable_and_refundable_flags(self, db):
        assert OrderFactory().is_payable is True
        assert OrderFactory(payment_status=PaymentStatus.FAILED).is_payable is True
        assert OrderFactory(payment_status=PaymentStatus.PAID).is_refundable is True
        assert (
            OrderFactory(payment_status=PaymentStatus.REFUNDED).is_refundable is False
        )


class TestOrderPayment:
    def test_provider_payment_id_is_unique(self, db):
        OrderPaymentFactory(provider_payment_id="pi_dup")

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                OrderPaymentFactory(provider_payment_id="pi_dup")

    def test_one_active_payment_per_order(self, db):
        payment = OrderPaymentFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                OrderPaymentFactory(order=payment.order, provider_payment_id="pi_second")

    def test_refunded_payment_does_not_block_new_payment(self, db):
        payment = OrderPaymentFactory(status=OrderPaymentStatus.REFUNDED)

        second = OrderPaymentFactory(order=payment.order, provider_payment_id="pi_new")

        assert second.order_id == payment.order_id

    def test_refunded_totals_without_refunds(self, db):
        payment = OrderPaymentFactory()

        assert payment.refunded_totals() == (Decimal("0.00"), Decimal("0.00"))


class TestSellerBalanceEntry:
    def test_entries_are_immutable(self, db):
        entry = credit_store(StoreFactory(), "10.00", "entry:immutable")

        entry.description = "edited"
        with pytest.raises(SettlementError) as exc_info:
            entry.save()

        assert exc_info.value.error_code == "LEDGER_ENTRY_IMMUTABLE"

    def test_entries_cannot_be_deleted(self, db):
        entry = credit_store(StoreFactory(), "10.00", "entry:undeletable")

        with pytest.raises(SettlementError):
            entry.delete()

        assert SellerBalanceEntry.objects.filter(id=entry.id).exists()

    def test_zero_amount_rejected_by_constraint(self, db):
        store = StoreFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                SellerBalanceEntry.objects.create(
                    store=store,
                    entry_type=BalanceEntryType.ADJUSTMENT,
                    amount=Decimal("0.00"),
                    currency="usd",
                    idempotency_key="entry:zero",
                )


class TestReconciliationDiscrepancy:
    def test_unique_per_type_store_reference(self, db):
        store = StoreFactory()
        ReconciliationDiscrepancy.objects.create(
            discrepancy_type=DiscrepancyType.GATEWAY_PAYOUT_UNRECORDED,
            store=store,
            reference="po_1",
        )

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                ReconciliationDiscrepancy.objects.create(
                    discrepancy_type=DiscrepancyType.GATEWAY_PAYOUT_UNRECORDED,
                    store=store,
                    reference="po_1",
                )

    def test_resolve(self, db):
        discrepancy = ReconciliationDiscrepancy.objects.create(
            discrepancy_type=DiscrepancyType.PAYOUT_STUCK_PENDING,
            store=StoreFactory(),
            reference="payout-1",
        )

        discrepancy.resolve()

        assert discrepancy.resolution == DiscrepancyResolution.RESOLVED
        assert discrepancy.resolved_at is not None
