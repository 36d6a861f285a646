"""
Settlement services.

This module provides:
- OrderSplitterService: Splits a multi-store cart into per-store orders
- PaymentRecorderService: Starts destination charges and records captured payments
- RefundService: Refunds orders and reverses their ledger entries
- PayoutExecutorService: Evaluates and dispatches one store's payout
- PayoutSchedulerService: Sweeps stores whose automatic payout is due
- ReconciliationService: Flags gateway vs. local payout mismatches
- StoreAccountService: Connected account onboarding
- BalanceService: Balance summaries and history

Usage:
    from settlement.services import Cart, CartLine, OrderSplitterService

    result = OrderSplitterService.create_orders_from_cart(
        Cart(
            lines=[CartLine(store_id=store.id, listing_id="lst_1", quantity=1,
                            unit_price=Decimal("30.00"))],
            currency="usd",
            shipping_amount=Decimal("5.00"),
        )
    )

    from settlement.services import PaymentRecorderService

    result = PaymentRecorderService.record_payment(
        order_id=order.id,
        provider_payment_id="pi_123",
        gross_amount=Decimal("35.00"),
    )

    from settlement.services import PayoutSchedulerService

    report = PayoutSchedulerService.run_payout_sweep()
"""

from settlement.services.balance_service import BalanceService
from settlement.services.order_splitter import (
    Cart,
    CartLine,
    OrderSplitterService,
    SplitResult,
    StoreSplit,
)
from settlement.services.payment_recorder import (
    PaymentRecord,
    PaymentRecorderService,
    calculate_platform_fee,
)
from settlement.services.payout_executor import (
    PayoutAttemptState,
    PayoutExecutorService,
    PayoutOutcome,
    SkipReason,
)
from settlement.services.payout_scheduler import PayoutSchedulerService, SweepReport
from settlement.services.reconciliation_service import (
    ReconciliationReport,
    ReconciliationService,
)
from settlement.services.refund_service import RefundOutcome, RefundService
from settlement.services.store_account_service import StoreAccountService

__all__ = [
    "BalanceService",
    "Cart",
    "CartLine",
    "OrderSplitterService",
    "PaymentRecord",
    "PaymentRecorderService",
    "PayoutAttemptState",
    "PayoutExecutorService",
    "PayoutOutcome",
    "PayoutSchedulerService",
    "ReconciliationReport",
    "ReconciliationService",
    "RefundOutcome",
    "RefundService",
    "SkipReason",
    "SplitResult",
    "StoreAccountService",
    "SweepReport",
    "calculate_platform_fee",
]
