"""Unit tests for streak calculation (habitflow/gamification/streaks.py)"""
import pytest
from datetime import date, timedelta

from habitflow.gamification.streaks import (
    compute_streak,
    milestone_reached,
    period_index,
    streak_multiplier,
)
from habitflow.models import HabitFrequency

DAILY = HabitFrequency.DAILY
WEEKLY = HabitFrequency.WEEKLY
WEEKDAYS = HabitFrequency.WEEKDAYS

# 2024-03-11 is a Monday
MON = date(2024, 3, 11)


def day(offset: int) -> date:
    return MON + timedelta(days=offset)


# ============================================================================
# DAILY
# ============================================================================

class TestDailyStreak:

    def test_no_completions(self):
        state = compute_streak(DAILY, [], MON)
        assert state.current == 0
        assert state.longest == 0
        assert state.last_completed_date is None

    def test_consecutive_days_ending_today(self):
        """N consecutive days -> current = longest = N"""
        today = day(9)
        dates = [today - timedelta(days=i) for i in range(10)]
        state = compute_streak(DAILY, dates, today)

        assert state.current == 10
        assert state.longest == 10
        assert state.last_completed_date == today

    def test_today_still_open(self):
        """Missing today does not break a chain ending yesterday"""
        today = day(5)
        dates = [day(2), day(3), day(4)]
        state = compute_streak(DAILY, dates, today)

        assert state.current == 3

    def test_gap_before_today(self):
        """Days 1, 2, 3, 5 evaluated on day 5 -> current 1, longest 3"""
        dates = [day(1), day(2), day(3), day(5)]
        state = compute_streak(DAILY, dates, day(5))

        assert state.current == 1
        assert state.longest == 3

    def test_broken_yesterday(self):
        dates = [day(1), day(2)]
        state = compute_streak(DAILY, dates, day(4))

        assert state.current == 0
        assert state.longest == 2

    def test_removing_latest_day_lowers_current_by_one(self):
        dates = [day(i) for i in range(5)]
        before = compute_streak(DAILY, dates, day(4))
        after = compute_streak(DAILY, dates[:-1], day(4))

        assert after.current == before.current - 1

    def test_duplicates_and_order_ignored(self):
        dates = [day(3), day(1), day(2), day(3)]
        state = compute_streak(DAILY, dates, day(3))
        assert state.current == 3

    def test_frozen_day_bridges_without_counting(self):
        dates = [day(1), day(2), day(4)]
        state = compute_streak(DAILY, dates, day(4), frozen_dates=[day(3)])

        assert state.current == 3
        assert state.longest == 3

    def test_frozen_days_alone_do_not_count(self):
        state = compute_streak(DAILY, [day(4)], day(4), frozen_dates=[day(2), day(3)])
        assert state.current == 1


# ============================================================================
# WEEKDAYS
# ============================================================================

class TestWeekdaysStreak:

    def test_weekend_does_not_break_chain(self):
        """Mon-Fri then next Monday, evaluated Tuesday"""
        dates = [day(i) for i in range(5)] + [day(7)]
        state = compute_streak(WEEKDAYS, dates, day(8))

        assert state.current == 6
        assert state.longest == 6

    @pytest.mark.parametrize("weekend_offset", [5, 6])
    def test_evaluated_on_weekend(self, weekend_offset):
        dates = [day(i) for i in range(5)]
        state = compute_streak(WEEKDAYS, dates, day(weekend_offset))
        assert state.current == 5

    def test_missed_friday_breaks_chain_on_weekend(self):
        dates = [day(i) for i in range(4)]
        state = compute_streak(WEEKDAYS, dates, day(5))

        assert state.current == 0
        assert state.longest == 4

    def test_weekend_completion_does_not_count(self):
        state = compute_streak(WEEKDAYS, [day(5)], day(6))

        assert state.current == 0
        assert state.longest == 0
        assert state.last_completed_date == day(5)

    def test_period_index_skips_weekend(self):
        assert period_index(WEEKDAYS, day(5)) is None
        assert period_index(WEEKDAYS, day(6)) is None
        assert period_index(WEEKDAYS, day(7)) == period_index(WEEKDAYS, day(4)) + 1


# ============================================================================
# WEEKLY
# ============================================================================

class TestWeeklyStreak:

    def test_consecutive_weeks_with_current_week_open(self):
        dates = [day(-7), day(2)]  # previous week Monday, this week Wednesday
        state = compute_streak(WEEKLY, dates, day(9))  # next week Wednesday, nothing yet

        assert state.current == 2

    def test_current_week_completed(self):
        dates = [day(-7), day(2), day(10)]
        state = compute_streak(WEEKLY, dates, day(10))
        assert state.current == 3

    def test_missed_week_breaks_chain(self):
        dates = [day(-14), day(2)]
        state = compute_streak(WEEKLY, dates, day(2))

        assert state.current == 1
        assert state.longest == 1

    def test_multiple_completions_in_one_week_count_once(self):
        dates = [day(0), day(1), day(6)]
        state = compute_streak(WEEKLY, dates, day(6))
        assert state.current == 1


# ============================================================================
# Multipliers & milestones
# ============================================================================

@pytest.mark.parametrize("streak,multiplier", [
    (0, 1.0),
    (6, 1.0),
    (7, 1.5),
    (29, 1.5),
    (30, 2.0),
    (99, 2.0),
    (100, 3.0),
    (365, 3.0),
])
def test_streak_multiplier(streak, multiplier):
    assert streak_multiplier(streak) == multiplier


def test_milestone_reached():
    assert milestone_reached(6, 7) == 7
    assert milestone_reached(7, 8) is None
    assert milestone_reached(29, 100) == 100
    assert milestone_reached(0, 0) is None
