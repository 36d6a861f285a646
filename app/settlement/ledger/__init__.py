"""
Seller balance ledger.

Append-only signed entries per store and currency, with balances derived
by replaying them:

    available_balance = sum of entries whose hold window has elapsed
    pending_balance   = sum of entries still inside their hold window
    amount_due        = max(0, -available_balance)

Usage:
    from settlement.ledger import EntryParams, LedgerService

    LedgerService.append_entries([
        EntryParams(
            store_id=store.id,
            entry_type=BalanceEntryType.ORDER_PAYMENT,
            amount=Decimal("100.00"),
            currency="usd",
            idempotency_key="payment:pi_123",
            order_payment_id=payment.id,
        ),
    ])

    summary = LedgerService.get_balance_summary(store.id, "usd")
    print(summary.to_dict())
"""

from .models import SellerBalance, SellerBalanceEntry
from .services import LedgerService
from .types import BalanceSummary, EntryParams

__all__ = [
    # Models
    "SellerBalance",
    "SellerBalanceEntry",
    # Service
    "LedgerService",
    # Types
    "BalanceSummary",
    "EntryParams",
]
