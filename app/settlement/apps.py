"""
Settlement app configuration.

This app implements order settlement and seller payouts:
- Multi-store checkout splitting with prorated shipping/tax/discount
- Payment recording with platform fees
- Per-store balance ledger
- Refunds, scheduled payouts and gateway reconciliation
"""

from django.apps import AppConfig


class SettlementConfig(AppConfig):
    """Configuration for the settlement application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "settlement"
    verbose_name = "Settlement"
