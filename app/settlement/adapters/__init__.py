"""
Payment gateway adapters.

All gateway calls go through these adapters so that error handling,
timeouts, idempotency and logging are consistent.
"""

from settlement.adapters.stripe_adapter import (
    ChargeResult,
    ConnectedAccountResult,
    CreatePayoutParams,
    DestinationChargeParams,
    IdempotencyKeyGenerator,
    PayoutResult,
    RefundResult,
    StripeAdapter,
)

__all__ = [
    "ChargeResult",
    "ConnectedAccountResult",
    "CreatePayoutParams",
    "DestinationChargeParams",
    "IdempotencyKeyGenerator",
    "PayoutResult",
    "RefundResult",
    "StripeAdapter",
]
