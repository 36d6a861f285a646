"""
State enums for settlement models.

These are Django TextChoices used both as database choices and as
django-fsm states.

State Machines Overview:

Order.payment_status:
    pending → paid → partially_refunded → refunded
    pending → failed / void
    failed → paid (a new charge attempt succeeded)
    paid → refunded (full refund)

OrderPayment.status:
    completed → partially_refunded → refunded
    completed → refunded

SellerPayout.status:
    pending → completed (terminal)
    pending → failed (terminal for this attempt; a retry is a new payout)
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    Lifecycle of an order as seen by the store.

    Orders are never deleted; ARCHIVED replaces deletion.
    """

    OPEN = "open", "Open"
    COMPLETED = "completed", "Completed"
    CANCELED = "canceled", "Canceled"
    ARCHIVED = "archived", "Archived"


class PaymentStatus(models.TextChoices):
    """
    Payment state of an order.

    Mutated only by payment recording and refund processing.
    Refundable states: PAID, PARTIALLY_REFUNDED.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"
    VOID = "void", "Void"


class FulfillmentStatus(models.TextChoices):
    UNFULFILLED = "unfulfilled", "Unfulfilled"
    PARTIALLY_FULFILLED = "partially_fulfilled", "Partially Fulfilled"
    FULFILLED = "fulfilled", "Fulfilled"


class OrderPaymentStatus(models.TextChoices):
    COMPLETED = "completed", "Completed"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"


class TransferStatus(models.TextChoices):
    """Whether the store's share of a payment is still held by the platform."""

    HELD = "held", "Held"
    RELEASED = "released", "Released"


class RefundType(models.TextChoices):
    FULL = "full", "Full"
    PARTIAL = "partial", "Partial"


class BalanceEntryType(models.TextChoices):
    """
    Types of seller balance ledger entries.

    Sign convention (amount is signed):
        ORDER_PAYMENT: credit (+gross)
        PLATFORM_FEE: debit (-fee), or credit when a refund returns fee
        REFUND: debit (-refunded amount)
        PAYOUT: debit (-paid out amount)
        ADJUSTMENT: either sign, manual corrections
    """

    ORDER_PAYMENT = "order_payment", "Order Payment"
    PLATFORM_FEE = "platform_fee", "Platform Fee"
    REFUND = "refund", "Refund"
    PAYOUT = "payout", "Payout"
    ADJUSTMENT = "adjustment", "Adjustment"


class PayoutStatus(models.TextChoices):
    """
    States for a single payout attempt.

    Terminal states: COMPLETED, FAILED
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PayoutMethod(models.TextChoices):
    MANUAL = "manual", "Manual"
    AUTOMATIC = "automatic", "Automatic"


class PayoutSchedule(models.TextChoices):
    """
    Automatic payout cadence.

    DAILY: every day
    WEEKLY: on payout_day_of_week
    BIWEEKLY: every 14 days from the last payout
    MONTHLY: on payout_day_of_month (clamped to the month's length)
    """

    DAILY = "daily", "Daily"
    WEEKLY = "weekly", "Weekly"
    BIWEEKLY = "biweekly", "Biweekly"
    MONTHLY = "monthly", "Monthly"


class PayoutTrigger(models.TextChoices):
    SCHEDULED = "scheduled", "Scheduled"
    MANUAL = "manual", "Manual"


class OnboardingStatus(models.TextChoices):
    """
    Gateway onboarding status for a store's connected account.

    Flow:
        NOT_STARTED → IN_PROGRESS → COMPLETE
        COMPLETE → RESTRICTED (gateway requires more information)
    """

    NOT_STARTED = "not_started", "Not Started"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETE = "complete", "Complete"
    RESTRICTED = "restricted", "Restricted"


class DiscrepancyType(models.TextChoices):
    """Mismatch kinds flagged by the reconciliation pass."""

    GATEWAY_PAYOUT_UNRECORDED = (
        "gateway_payout_unrecorded",
        "Gateway payout without local record",
    )
    PAYOUT_MISSING_LEDGER_ENTRY = (
        "payout_missing_ledger_entry",
        "Completed payout without ledger debit",
    )
    LOCAL_PAYOUT_MISSING_AT_GATEWAY = (
        "local_payout_missing_at_gateway",
        "Local payout not found at gateway",
    )
    PAYOUT_STUCK_PENDING = "payout_stuck_pending", "Payout stuck pending"
    BALANCE_CACHE_DRIFT = "balance_cache_drift", "Cached balance drift"


class DiscrepancyResolution(models.TextChoices):
    OPEN = "open", "Open"
    AUTO_HEALED = "auto_healed", "Auto Healed"
    RESOLVED = "resolved", "Resolved"
