"""
State enums for settlement models.
"""

from settlement.state_machines.states import (
    BalanceEntryType,
    DiscrepancyResolution,
    DiscrepancyType,
    FulfillmentStatus,
    OnboardingStatus,
    OrderPaymentStatus,
    OrderStatus,
    PaymentStatus,
    PayoutMethod,
    PayoutSchedule,
    PayoutStatus,
    PayoutTrigger,
    RefundType,
    TransferStatus,
)

__all__ = [
    "BalanceEntryType",
    "DiscrepancyResolution",
    "DiscrepancyType",
    "FulfillmentStatus",
    "OnboardingStatus",
    "OrderPaymentStatus",
    "OrderStatus",
    "PaymentStatus",
    "PayoutMethod",
    "PayoutSchedule",
    "PayoutStatus",
    "PayoutTrigger",
    "RefundType",
    "TransferStatus",
]
