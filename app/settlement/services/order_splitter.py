"""
Order splitter: turns one multi-store checkout into per-store orders.

Each store in the cart gets its own Order with its own items. Cart-level
shipping, tax and discount are prorated across stores by subtotal share,
with the last store absorbing the rounding remainder so the parts always
add back up to the cart totals.

Every store is validated before anything is written. Order creation and
inventory reservation for all stores then run in one transaction: if any
store's reservation fails, no order from the checkout survives.

Usage:
    from settlement.services import Cart, CartLine, OrderSplitterService

    result = OrderSplitterService.create_orders_from_cart(
        Cart(
            lines=[
                CartLine(store_id=a.id, listing_id="lst_1", quantity=1, unit_price=Decimal("30.00")),
                CartLine(store_id=b.id, listing_id="lst_2", quantity=1, unit_price=Decimal("70.00")),
            ],
            currency="usd",
            shipping_amount=Decimal("10.00"),
            discount_amount=Decimal("5.00"),
        )
    )
    if not result.success:
        show_error(result.error)  # e.g. "Store(s) have not connected a payout account: A"
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult

from settlement import money
from settlement.exceptions import InventoryError, PaymentSetupError
from settlement.inventory import (
    InventoryDirection,
    InventoryLine,
    get_inventory_gateway,
)
from settlement.models import Order, OrderItem, Store

# =============================================================================
# Input / Output Types
# =============================================================================


@dataclass
class CartLine:
    """
    One purchasable line of a cart.

    Attributes:
        store_id: Store selling the listing
        listing_id: Catalog listing reference
        quantity: Units purchased (positive)
        unit_price: Price per unit in the cart currency
        title: Listing title at purchase time
        discount_amount: Line-level discount, if the catalog applied one
    """

    store_id: uuid.UUID
    listing_id: str
    quantity: int
    unit_price: Decimal
    title: str = ""
    discount_amount: Decimal = money.ZERO


@dataclass
class Cart:
    lines: list[CartLine]
    currency: str
    shipping_amount: Decimal = money.ZERO
    tax_amount: Decimal = money.ZERO
    discount_amount: Decimal = money.ZERO
    checkout_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class StoreSplit:
    """Amounts computed for one store before anything is persisted."""

    store: Store
    lines: list[CartLine]
    subtotal: Decimal
    line_discount: Decimal
    shipping_amount: Decimal = money.ZERO
    tax_amount: Decimal = money.ZERO
    discount_amount: Decimal = money.ZERO

    @property
    def total(self) -> Decimal:
        total = money.subtract(
            money.add(self.subtotal, self.shipping_amount, self.tax_amount),
            self.discount_amount,
        )
        return max(money.ZERO, total)


@dataclass
class SplitResult:
    checkout_id: uuid.UUID
    orders: list[Order]

    @property
    def total(self) -> Decimal:
        return money.add(*(order.total for order in self.orders))


# =============================================================================
# Order Splitter Service
# =============================================================================


class OrderSplitterService(BaseService):
    """
    Splits a multi-store cart into independent per-store orders.

    Failure results (nothing persisted):
        VALIDATION_ERROR: Empty cart, bad line, unknown store or listing
        PAYMENT_SETUP_REQUIRED: One or more stores cannot receive funds
        INVENTORY_ERROR: A store's inventory reservation failed
    """

    @classmethod
    def create_orders_from_cart(cls, cart: Cart) -> ServiceResult[SplitResult]:
        logger = cls.get_logger()
        checkout_id = cart.checkout_id

        try:
            splits = cls.split_cart(cart)
        except (ValidationError, PaymentSetupError) as e:
            logger.info(
                "Checkout rejected before persistence",
                extra={
                    "checkout_id": str(checkout_id),
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return ServiceResult.from_exception(e)

        reserved: list[tuple[StoreSplit, Order]] = []
        try:
            with cls.atomic():
                orders = []
                for split in splits:
                    order = cls._create_order(split, cart)
                    cls._reserve_inventory(split, order)
                    reserved.append((split, order))
                    orders.append(order)
        except InventoryError as e:
            logger.warning(
                "Inventory reservation failed, checkout rolled back",
                extra={
                    "checkout_id": str(checkout_id),
                    "error": e.message,
                    "details": e.details,
                },
            )
            cls._release_reservations(reserved, e)
            return ServiceResult.from_exception(e)

        logger.info(
            "Checkout split into store orders",
            extra={
                "checkout_id": str(checkout_id),
                "order_count": len(orders),
                "store_ids": [str(order.store_id) for order in orders],
            },
        )
        return ServiceResult.success(SplitResult(checkout_id=checkout_id, orders=orders))

    # =========================================================================
    # Splitting
    # =========================================================================

    @classmethod
    def split_cart(cls, cart: Cart) -> list[StoreSplit]:
        """
        Validate a cart and compute each store's amounts.

        Raises:
            ValidationError: Bad input, unknown store or unknown listing
            PaymentSetupError: A store has no payment destination
        """
        cls._validate_cart(cart)

        grouped: dict[uuid.UUID, list[CartLine]] = {}
        for line in cart.lines:
            grouped.setdefault(line.store_id, []).append(line)

        stores = {
            store.id: store
            for store in Store.objects.filter(id__in=grouped.keys(), is_active=True)
        }
        missing = [str(store_id) for store_id in grouped if store_id not in stores]
        if missing:
            raise ValidationError(
                "Cart references unknown store(s)",
                details={"store_ids": missing},
            )

        currency = cart.currency.lower()
        mismatched = [
            store.name for store in stores.values() if store.currency.lower() != currency
        ]
        if mismatched:
            raise ValidationError(
                f"Cart currency {currency.upper()} does not match the settlement "
                f"currency of: {', '.join(mismatched)}",
                details={"stores": mismatched, "currency": currency},
            )

        inventory = get_inventory_gateway()
        for line in cart.lines:
            if not inventory.listing_exists(line.store_id, line.listing_id):
                raise ValidationError(
                    f"Listing {line.listing_id} not found in store {stores[line.store_id].name}",
                    details={
                        "store_id": str(line.store_id),
                        "listing_id": line.listing_id,
                    },
                )

        blocked = [
            stores[store_id].name
            for store_id in grouped
            if not stores[store_id].has_payment_destination
        ]
        if blocked:
            raise PaymentSetupError(blocked)

        splits = [
            StoreSplit(
                store=stores[store_id],
                lines=lines,
                subtotal=money.add(*(cls._line_subtotal(line) for line in lines)),
                line_discount=money.add(*(line.discount_amount for line in lines)),
            )
            for store_id, lines in grouped.items()
        ]

        weights = [split.subtotal for split in splits]
        shipping_parts = money.prorate(cart.shipping_amount, weights)
        tax_parts = money.prorate(cart.tax_amount, weights)

        # Line-level discounts replace the prorated cart discount
        if any(split.line_discount for split in splits):
            discount_parts = [split.line_discount for split in splits]
        else:
            discount_parts = money.prorate(cart.discount_amount, weights)

        for split, shipping, tax, discount in zip(
            splits, shipping_parts, tax_parts, discount_parts
        ):
            split.shipping_amount = shipping
            split.tax_amount = tax
            split.discount_amount = discount

        return splits

    @staticmethod
    def _line_subtotal(line: CartLine) -> Decimal:
        return money.quantize(money.to_decimal(line.unit_price) * line.quantity)

    @staticmethod
    def _validate_cart(cart: Cart) -> None:
        errors: dict[str, list[str]] = {}

        def check_amount(key: str, value, message: str) -> None:
            try:
                if money.to_decimal(value) < 0:
                    errors.setdefault(key, []).append(message)
            except (TypeError, ValueError, ArithmeticError) as e:
                errors.setdefault(key, []).append(str(e))

        if not cart.lines:
            raise ValidationError("Cart is empty")
        if not cart.currency:
            errors.setdefault("currency", []).append("Currency is required")

        for name in ("shipping_amount", "tax_amount", "discount_amount"):
            check_amount(name, getattr(cart, name), "Must not be negative")

        for index, line in enumerate(cart.lines):
            key = f"lines[{index}]"
            if not isinstance(line.quantity, int) or isinstance(line.quantity, bool):
                errors.setdefault(key, []).append("Quantity must be an integer")
            elif line.quantity <= 0:
                errors.setdefault(key, []).append("Quantity must be positive")
            check_amount(key, line.unit_price, "Unit price must not be negative")
            check_amount(key, line.discount_amount, "Discount must not be negative")
            if not line.listing_id:
                errors.setdefault(key, []).append("Listing is required")

        if errors:
            raise ValidationError("Invalid cart", details={"errors": errors})

    # =========================================================================
    # Persistence
    # =========================================================================

    @classmethod
    def _create_order(cls, split: StoreSplit, cart: Cart) -> Order:
        order = Order.objects.create(
            checkout_id=cart.checkout_id,
            store=split.store,
            currency=cart.currency.lower(),
            subtotal=split.subtotal,
            discount_amount=split.discount_amount,
            shipping_amount=split.shipping_amount,
            tax_amount=split.tax_amount,
            total=split.total,
        )

        items = []
        for line in split.lines:
            line_subtotal = cls._line_subtotal(line)
            items.append(
                OrderItem(
                    order=order,
                    listing_id=line.listing_id,
                    title=line.title,
                    quantity=line.quantity,
                    unit_price=money.quantize(line.unit_price),
                    subtotal=line_subtotal,
                    discount_amount=money.quantize(line.discount_amount),
                    total=max(
                        money.ZERO,
                        money.subtract(line_subtotal, line.discount_amount),
                    ),
                )
            )
        OrderItem.objects.bulk_create(items)
        return order

    @staticmethod
    def _inventory_lines(split: StoreSplit) -> list[InventoryLine]:
        return [
            InventoryLine(listing_id=line.listing_id, quantity=line.quantity)
            for line in split.lines
        ]

    @classmethod
    def _reserve_inventory(cls, split: StoreSplit, order: Order) -> None:
        result = get_inventory_gateway().adjust_inventory(
            items=cls._inventory_lines(split),
            store_id=split.store.id,
            direction=InventoryDirection.RESERVE,
            reason="checkout",
            order_id=order.id,
        )
        if not result.success:
            raise InventoryError(
                f"Inventory reservation failed for store {split.store.name}: {result.error}",
                details={
                    "store_id": str(split.store.id),
                    "store_name": split.store.name,
                },
            )

    @classmethod
    def _release_reservations(
        cls,
        reserved: list[tuple[StoreSplit, Order]],
        cause: InventoryError,
    ) -> None:
        """Release reservations made for stores whose orders were rolled back."""
        gateway = get_inventory_gateway()
        for split, order in reserved:
            result = gateway.adjust_inventory(
                items=cls._inventory_lines(split),
                store_id=split.store.id,
                direction=InventoryDirection.RELEASE,
                reason=f"checkout rolled back: {cause.message}",
                order_id=order.id,
            )
            if not result.success:
                cls.get_logger().error(
                    "Failed to release inventory after checkout rollback",
                    extra={
                        "store_id": str(split.store.id),
                        "order_id": str(order.id),
                        "error": result.error,
                    },
                )
