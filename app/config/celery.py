"""
Celery configuration for the settlement engine.

Celery runs the settlement background work:
- The automatic payout sweep
- Seller balance cache refresh
- Payout reconciliation

Schedules are stored in the database by django-celery-beat (see the
settlement beat schedule migration). Redis is both broker and result
backend.

Usage:
    from settlement.tasks import execute_store_payout

    execute_store_payout.delay(str(store.id))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up settlement/tasks.py
app.autodiscover_tasks()
