"""
Django signals for the settlement app.

Signals:
    payment_received: Sent once per recorded order payment, after the
        transaction that recorded it commits. Replayed payment
        notifications never send it again.

        Keyword arguments:
            order_payment: The OrderPayment that was recorded
            order: The Order that was paid

Usage:
    from django.dispatch import receiver
    from settlement.signals import payment_received

    @receiver(payment_received)
    def notify_seller(sender, order_payment, order, **kwargs):
        ...
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

payment_received = Signal()


def send_payment_received_on_commit(sender, order_payment, order) -> None:
    """Queue ``payment_received`` to be sent after the current transaction commits."""

    def _send():
        logger.debug(
            "Sending payment_received",
            extra={
                "order_payment_id": str(order_payment.id),
                "order_id": str(order.id),
            },
        )
        payment_received.send_robust(
            sender=sender,
            order_payment=order_payment,
            order=order,
        )

    transaction.on_commit(_send)
