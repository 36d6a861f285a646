"""
End-to-end settlement flows: checkout, payment, refund, payout sweep and
reconciliation, with only the gateway and Redis mocked.
"""

from decimal import Decimal

import pytest

from settlement.adapters import PayoutResult
from settlement.ledger import LedgerService
from settlement.models import Order, SellerPayout
from settlement.services import (
    Cart,
    CartLine,
    OrderSplitterService,
    PaymentRecorderService,
    PayoutSchedulerService,
    ReconciliationService,
    RefundService,
)
from settlement.state_machines import PaymentStatus, PayoutStatus, RefundType
from settlement.tests.factories import SellerPayoutSettingsFactory, StoreFactory


@pytest.fixture
def marketplace(db):
    alpha = StoreFactory(name="Alpha")
    beta = StoreFactory(name="Beta")
    for store in (alpha, beta):
        SellerPayoutSettingsFactory(store=store, hold_period_days=0)
    return alpha, beta


@pytest.fixture
def unique_payouts(mock_gateway):
    def create_payout(params):
        return PayoutResult(
            id=f"po_{params.metadata['seller_payout_id'][:8]}",
            amount_cents=params.amount_cents,
            currency=params.currency,
            status="pending",
        )

    mock_gateway.create_payout.side_effect = create_payout
    return mock_gateway


def balance(store):
    return LedgerService.compute_balance(store.id, "usd").available_balance


def checkout_and_pay(alpha, beta):
    result = OrderSplitterService.create_orders_from_cart(
        Cart(
            lines=[
                CartLine(
                    store_id=alpha.id,
                    listing_id="lst_a",
                    quantity=1,
                    unit_price=Decimal("30.00"),
                ),
                CartLine(
                    store_id=beta.id,
                    listing_id="lst_b",
                    quantity=1,
                    unit_price=Decimal("70.00"),
                ),
            ],
            currency="usd",
            shipping_amount=Decimal("5.00"),
        )
    )
    assert result.success
    orders = {order.store_id: order for order in result.data.orders}
    for order in orders.values():
        recorded = PaymentRecorderService.record_payment(
            order_id=order.id,
            provider_payment_id=f"pi_{order.id.hex[:12]}",
            gross_amount=order.total,
        )
        assert recorded.success
    return orders[alpha.id], orders[beta.id]


class TestCheckoutToPayout:
    def test_full_settlement_cycle(
        self, marketplace, unique_payouts, mock_redis_lock, inventory_gateway
    ):
        alpha, beta = marketplace

        alpha_order, beta_order = checkout_and_pay(alpha, beta)

        assert alpha_order.total == Decimal("31.50")
        assert beta_order.total == Decimal("73.50")
        # 5% fee: 1.575 -> 1.58 and 3.675 -> 3.68
        assert balance(alpha) == Decimal("29.92")
        assert balance(beta) == Decimal("69.82")

        refund = RefundService.process_refund(
            beta_order.id, RefundType.PARTIAL, amount=Decimal("10.00")
        )
        assert refund.success
        assert refund.data.platform_fee_refunded == Decimal("0.50")
        assert balance(beta) == Decimal("60.32")

        report = PayoutSchedulerService.run_payout_sweep()

        assert report.to_dict() == {"processed": 2, "skipped": 0, "errors": []}
        assert balance(alpha) == Decimal("0.00")
        assert balance(beta) == Decimal("0.00")
        amounts = {
            p.store_id: p.amount
            for p in SellerPayout.objects.filter(status=PayoutStatus.COMPLETED)
        }
        assert amounts == {alpha.id: Decimal("29.92"), beta.id: Decimal("60.32")}

        unique_payouts.list_payouts.side_effect = lambda account_id, **kwargs: [
            PayoutResult(
                id=p.provider_payout_id,
                amount_cents=int(p.amount * 100),
                currency="usd",
                status="paid",
                metadata={"seller_payout_id": str(p.id)},
            )
            for p in SellerPayout.objects.filter(store__stripe_account_id=account_id)
        ]

        reconciliation = ReconciliationService.run_reconciliation().data

        assert reconciliation.stores_checked == 2
        assert reconciliation.discrepancies_found == 0

    def test_refund_after_payout_leaves_amount_due(
        self, marketplace, unique_payouts, mock_redis_lock, inventory_gateway
    ):
        alpha, beta = marketplace
        alpha_order, _ = checkout_and_pay(alpha, beta)
        PayoutSchedulerService.run_payout_sweep()

        RefundService.process_refund(alpha_order.id, RefundType.FULL)

        summary = LedgerService.compute_balance(alpha.id, "usd")
        # Refund 31.50, fee returned 1.58
        assert summary.available_balance == Decimal("-29.92")
        assert summary.amount_due == Decimal("29.92")
        assert (
            Order.objects.get(id=alpha_order.id).payment_status
            == PaymentStatus.REFUNDED
        )

        report = PayoutSchedulerService.run_payout_sweep()

        assert report.processed == 0
