"""
Tests for payout schedule arithmetic.

All times are UTC (TIME_ZONE = "UTC"). 2025-01-07 is a Tuesday.
"""

from datetime import datetime, timezone as dt_timezone

import pytest

from settlement.schedules import compute_next_payout_at
from settlement.state_machines import PayoutSchedule


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


class TestComputeNextPayoutAt:
    def test_daily_is_next_midnight(self):
        result = compute_next_payout_at(PayoutSchedule.DAILY, utc(2025, 1, 7, 15, 0))
        assert result == utc(2025, 1, 8)

    def test_weekly_moves_to_configured_weekday(self):
        # Tuesday -> next Monday
        result = compute_next_payout_at(
            PayoutSchedule.WEEKLY, utc(2025, 1, 7, 9, 30), day_of_week=0
        )
        assert result == utc(2025, 1, 13)

    def test_weekly_on_payout_day_moves_a_full_week(self):
        # Monday -> the following Monday, never the same day
        result = compute_next_payout_at(
            PayoutSchedule.WEEKLY, utc(2025, 1, 6, 0, 5), day_of_week=0
        )
        assert result == utc(2025, 1, 13)

    def test_biweekly_is_fourteen_days_from_completion(self):
        result = compute_next_payout_at(PayoutSchedule.BIWEEKLY, utc(2025, 1, 7, 23, 59))
        assert result == utc(2025, 1, 21)

    def test_monthly_later_this_month(self):
        result = compute_next_payout_at(
            PayoutSchedule.MONTHLY, utc(2025, 1, 10, 12), day_of_month=15
        )
        assert result == utc(2025, 1, 15)

    def test_monthly_rolls_to_next_month(self):
        result = compute_next_payout_at(
            PayoutSchedule.MONTHLY, utc(2025, 1, 15, 12), day_of_month=15
        )
        assert result == utc(2025, 2, 15)

    def test_monthly_clamps_to_month_length(self):
        result = compute_next_payout_at(
            PayoutSchedule.MONTHLY, utc(2025, 1, 31, 8), day_of_month=31
        )
        assert result == utc(2025, 2, 28)

    def test_monthly_clamps_in_leap_year(self):
        result = compute_next_payout_at(
            PayoutSchedule.MONTHLY, utc(2024, 1, 31, 8), day_of_month=30
        )
        assert result == utc(2024, 2, 29)

    def test_monthly_december_rolls_into_january(self):
        result = compute_next_payout_at(
            PayoutSchedule.MONTHLY, utc(2025, 12, 20), day_of_month=1
        )
        assert result == utc(2026, 1, 1)

    def test_late_sweep_schedules_from_actual_completion(self):
        """A payout due Monday but completed Thursday schedules from Thursday."""
        result = compute_next_payout_at(
            PayoutSchedule.WEEKLY, utc(2025, 1, 9, 10), day_of_week=3
        )
        assert result == utc(2025, 1, 16)

    @pytest.mark.parametrize("schedule", PayoutSchedule.values)
    def test_result_is_strictly_after_completion(self, schedule):
        completed = utc(2025, 3, 31, 23, 59)
        assert compute_next_payout_at(schedule, completed, 0, 31) > completed

    def test_unknown_schedule_raises(self):
        with pytest.raises(ValueError):
            compute_next_payout_at("hourly", utc(2025, 1, 7))
