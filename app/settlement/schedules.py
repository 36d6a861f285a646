"""
Payout schedule arithmetic.

The next payout is always computed from the time the previous payout
actually completed, never from the time it was due, so a sweep that runs
days late does not leave the store permanently behind schedule.

Weekdays follow Python's convention: 0 is Monday, 6 is Sunday.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta

from django.utils import timezone

from settlement.state_machines import PayoutSchedule


def _start_of_day(day: date) -> datetime:
    return timezone.make_aware(datetime.combine(day, time.min))


def _next_day_of_month(day: date, day_of_month: int) -> date:
    """Next occurrence of day_of_month strictly after day, clamped to month length."""
    this_month = date(
        day.year, day.month, min(day_of_month, calendar.monthrange(day.year, day.month)[1])
    )
    if this_month > day:
        return this_month
    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last_day))


def compute_next_payout_at(
    schedule: str,
    completed_at: datetime,
    day_of_week: int = 0,
    day_of_month: int = 1,
) -> datetime:
    """
    Return the start of the day on which the next payout is due.

    The result is always strictly after ``completed_at``.

    Args:
        schedule: PayoutSchedule value
        completed_at: When the previous payout actually completed
        day_of_week: Weekday for weekly schedules (0=Monday)
        day_of_month: Day for monthly schedules, clamped to the month length

    Examples:
        daily:    completed Tue 15:00 -> Wed 00:00
        weekly:   completed Tue, day_of_week=0 -> next Mon 00:00
        weekly:   completed Mon, day_of_week=0 -> Mon a week later
        biweekly: completed Tue -> Tue two weeks later
        monthly:  completed Jan 10, day_of_month=15 -> Jan 15
        monthly:  completed Jan 31, day_of_month=31 -> Feb 28/29
    """
    completed_day = timezone.localtime(completed_at).date()

    if schedule == PayoutSchedule.DAILY:
        next_day = completed_day + timedelta(days=1)
    elif schedule == PayoutSchedule.WEEKLY:
        days_ahead = (day_of_week - completed_day.weekday()) % 7 or 7
        next_day = completed_day + timedelta(days=days_ahead)
    elif schedule == PayoutSchedule.BIWEEKLY:
        next_day = completed_day + timedelta(days=14)
    elif schedule == PayoutSchedule.MONTHLY:
        next_day = _next_day_of_month(completed_day, day_of_month)
    else:
        raise ValueError(f"Unknown payout schedule: {schedule}")

    return _start_of_day(next_day)
