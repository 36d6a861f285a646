"""
Settlement domain models.

- Store: Seller storefront and its gateway connected account
- Order / OrderItem: One order per store per checkout
- OrderPayment / OrderRefund: Captured charges and their refunds
- SellerPayoutSettings / SellerPayout: Payout preferences and attempts
- SellerBalanceEntry / SellerBalance: Balance ledger and its cached snapshot
- ReconciliationDiscrepancy: Gateway vs. local mismatches
"""

from settlement.models.store import Store
from settlement.models.order import Order, OrderItem
from settlement.models.payment import OrderPayment, OrderRefund
from settlement.models.payout import SellerPayout, SellerPayoutSettings
from settlement.models.reconciliation import ReconciliationDiscrepancy
from settlement.ledger.models import SellerBalance, SellerBalanceEntry

__all__ = [
    "Order",
    "OrderItem",
    "OrderPayment",
    "OrderRefund",
    "ReconciliationDiscrepancy",
    "SellerBalance",
    "SellerBalanceEntry",
    "SellerPayout",
    "SellerPayoutSettings",
    "Store",
]
