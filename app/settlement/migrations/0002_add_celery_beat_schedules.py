"""
Add celery-beat schedules for settlement background work.

This migration creates periodic task schedules for:
- The automatic payout sweep (every 5 minutes)
- Seller balance cache refresh (hourly)
- Payout reconciliation (every 6 hours)
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Settlement Payout Sweep",
        "task": "settlement.workers.payout_sweep.run_payout_sweep",
        "every": 5,
        "period": "minutes",
        "description": (
            "Pays out every store on automatic payouts whose next payout is due."
        ),
    },
    {
        "name": "Settlement Balance Refresh",
        "task": "settlement.workers.balance_refresh.refresh_seller_balances",
        "every": 1,
        "period": "hours",
        "description": (
            "Re-derives cached seller balances so cleared funds move from "
            "pending to available."
        ),
    },
    {
        "name": "Settlement Payout Reconciliation",
        "task": "settlement.workers.reconciliation_worker.run_scheduled_reconciliation",
        "every": 6,
        "period": "hours",
        "description": (
            "Compares gateway payout history with local payouts and ledger "
            "entries and records discrepancies."
        ),
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the settlement periodic tasks."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for definition in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=definition["every"],
            period=definition["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=definition["name"],
            defaults={
                "task": definition["task"],
                "interval": schedule,
                "enabled": True,
                "description": definition["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[definition["name"] for definition in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
