# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings and Celery configuration for the settlement engine.
#
# Import the Celery app so it is loaded when Django starts and the
# settlement workers are auto-discovered.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
