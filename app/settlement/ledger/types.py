"""
Data types for ledger operations.

Types:
    EntryParams: Parameters for appending one ledger entry
    BalanceSummary: Balance derived by replaying a store's entries

Usage:
    from settlement.ledger.types import EntryParams

    params = EntryParams(
        store_id=store.id,
        entry_type=BalanceEntryType.ORDER_PAYMENT,
        amount=Decimal("100.00"),
        currency="usd",
        idempotency_key="payment:pi_123",
        order_payment_id=payment.id,
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from settlement import money
from settlement.state_machines import BalanceEntryType

# Entry types whose sign is fixed. PLATFORM_FEE and ADJUSTMENT may be
# either sign (a refund returns part of the fee as a credit).
_CREDIT_ONLY = {BalanceEntryType.ORDER_PAYMENT}
_DEBIT_ONLY = {BalanceEntryType.REFUND, BalanceEntryType.PAYOUT}


@dataclass
class EntryParams:
    """
    Parameters for appending a ledger entry.

    Attributes:
        store_id: Store whose balance is affected
        entry_type: BalanceEntryType value
        amount: Signed amount (positive credit, negative debit)
        currency: ISO 4217 currency code
        idempotency_key: Unique replay-detection key
        order_id / order_payment_id / refund_id / payout_id: Optional references
        description: Human-readable description
        available_at: When the amount clears (defaults to now)
        metadata: Arbitrary JSON-serializable data
    """

    store_id: uuid.UUID
    entry_type: str
    amount: Decimal
    currency: str
    idempotency_key: str
    order_id: uuid.UUID | None = None
    order_payment_id: uuid.UUID | None = None
    refund_id: uuid.UUID | None = None
    payout_id: uuid.UUID | None = None
    description: str = ""
    available_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Normalize the amount and validate sign and required fields."""
        self.amount = money.quantize(self.amount)
        self.currency = (self.currency or "").lower()
        if self.amount == 0:
            raise ValueError("Ledger entry amount must be non-zero")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")
        if self.entry_type not in BalanceEntryType.values:
            raise ValueError(f"Unknown entry type: {self.entry_type}")
        if self.entry_type in _CREDIT_ONLY and self.amount < 0:
            raise ValueError(f"{self.entry_type} entries must be credits")
        if self.entry_type in _DEBIT_ONLY and self.amount > 0:
            raise ValueError(f"{self.entry_type} entries must be debits")


@dataclass(frozen=True)
class BalanceSummary:
    """
    Balance derived from a full replay of a store's entries.

    Attributes:
        available_balance: Cleared funds; negative when the store owes
        pending_balance: Funds still inside their hold window
        amount_due: max(0, -available_balance)
        current_balance: available_balance + pending_balance
    """

    store_id: uuid.UUID
    currency: str
    available_balance: Decimal
    pending_balance: Decimal
    as_of: datetime

    @property
    def amount_due(self) -> Decimal:
        return max(money.ZERO, -self.available_balance)

    @property
    def current_balance(self) -> Decimal:
        return money.add(self.available_balance, self.pending_balance)

    def to_dict(self) -> dict[str, str]:
        """Render amounts as decimal strings with minor-unit precision."""
        return {
            "store_id": str(self.store_id),
            "currency": self.currency,
            "available_balance": money.format_amount(self.available_balance),
            "pending_balance": money.format_amount(self.pending_balance),
            "amount_due": money.format_amount(self.amount_due),
            "current_balance": money.format_amount(self.current_balance),
        }
