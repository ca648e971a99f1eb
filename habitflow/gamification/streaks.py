"""
Frequency-aware Streak Calculation

Streaks are derived from the set of completion dates every time they are
needed; nothing about the current streak is stored.

Periods per frequency:
- DAILY: one calendar day
- WEEKDAYS: one Monday-Friday day; Saturday and Sunday are skipped and never
  break the chain (weekend completions do not count either)
- WEEKLY: one Monday-Sunday week; any completion inside it satisfies it

The period containing "today" is still open, so a missing completion there
does not break the streak: counting starts from the previous period instead.
Frozen dates (streak freeze powerup) bridge a gap without adding to it.
"""

from typing import Iterable, Optional
from datetime import date
import logging

from habitflow.models import HabitFrequency, StreakState

logger = logging.getLogger(__name__)

# Streak length -> multiplier, checked from the top
STREAK_MULTIPLIERS: list[tuple[int, float]] = [
    (100, 3.0),
    (30, 2.0),
    (7, 1.5),
]

STREAK_MILESTONES: tuple[int, ...] = (7, 30, 100, 365)


def _week_index(day: date) -> int:
    # date(1, 1, 1) is a Monday with ordinal 1
    return (day.toordinal() - 1) // 7


def period_index(frequency: HabitFrequency, day: date) -> Optional[int]:
    """
    Map a day onto a consecutive integer period index

    Adjacent periods differ by exactly 1. Returns None for days that are not
    part of any period (weekends for WEEKDAYS habits).
    """
    if frequency == HabitFrequency.DAILY:
        return day.toordinal()
    if frequency == HabitFrequency.WEEKLY:
        return _week_index(day)
    if frequency == HabitFrequency.WEEKDAYS:
        weekday = day.weekday()
        if weekday >= 5:
            return None
        return _week_index(day) * 5 + weekday
    raise ValueError(f"Unknown habit frequency: {frequency}")


def _current_period(frequency: HabitFrequency, today: date) -> tuple[int, bool]:
    """
    Period the backward walk starts from, and whether it is still open

    On a weekend a WEEKDAYS habit starts from the preceding Friday, which has
    already closed.
    """
    index = period_index(frequency, today)
    if index is not None:
        return index, True
    # Saturday -> Friday index, Sunday -> Friday index
    return _week_index(today) * 5 + 4, False


def compute_streak(
    frequency: HabitFrequency,
    completed_dates: Iterable[date],
    today: date,
    frozen_dates: Iterable[date] = ()
) -> StreakState:
    """
    Calculate current and longest streak for a habit

    Args:
        frequency: Habit frequency
        completed_dates: Days the habit was completed (any order, duplicates ok)
        today: Reference day in the habit's timezone
        frozen_dates: Days protected by a streak freeze

    Returns:
        StreakState(current, longest, last_completed_date)
    """
    dates = set(completed_dates)
    if not dates:
        return StreakState(current=0, longest=0, last_completed_date=None)

    completed = {
        idx for idx in (period_index(frequency, d) for d in dates) if idx is not None
    }
    frozen = {
        idx for idx in (period_index(frequency, d) for d in frozen_dates) if idx is not None
    } - completed

    # Current streak: walk backwards from the current period
    cursor, is_open = _current_period(frequency, today)
    if is_open and cursor not in completed:
        cursor -= 1

    current = 0
    while cursor in completed or cursor in frozen:
        if cursor in completed:
            current += 1
        cursor -= 1

    # Longest streak: scan every period in order
    longest = 0
    run = 0
    previous = None
    for idx in sorted(completed | frozen):
        if previous is not None and idx != previous + 1:
            run = 0
        if idx in completed:
            run += 1
            longest = max(longest, run)
        previous = idx

    longest = max(longest, current)

    return StreakState(
        current=current,
        longest=longest,
        last_completed_date=max(dates),
    )


def streak_multiplier(current_streak: int) -> float:
    """
    Reward multiplier for a streak length

    1-6: 1x, 7-29: 1.5x, 30-99: 2x, 100+: 3x
    """
    for minimum, multiplier in STREAK_MULTIPLIERS:
        if current_streak >= minimum:
            return multiplier
    return 1.0


def milestone_reached(old_streak: int, new_streak: int) -> Optional[int]:
    """Highest milestone crossed going from old_streak to new_streak, if any"""
    crossed = [m for m in STREAK_MILESTONES if old_streak < m <= new_streak]
    return crossed[-1] if crossed else None
