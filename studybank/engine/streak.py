"""
studybank.engine.streak — Daily Check-in Streak Calculator
===========================================================

Pure functions, no I/O.  The streak runs Monday through Sunday: a
check-in the day after yesterday's check-in extends it, except that a
Sunday check-in closes the week and Monday starts again at day 1.  Any
gap of two or more days also restarts it.  Day *N* of a streak pays *N*
times the configured daily reward, so the weekly reset caps it at 7.
"""

from __future__ import annotations

from datetime import date, timedelta

from studybank.constants import SUNDAY


def calculate_streak(
    today: date,
    last_checkin_date: date | None,
    current_streak: int = 0,
) -> int:
    """Return the streak length after checking in on *today*.

    >>> calculate_streak(date(2024, 1, 9), date(2024, 1, 8), 3)   # Tue after Mon
    4
    >>> calculate_streak(date(2024, 1, 8), date(2024, 1, 7), 5)   # Mon after Sun
    1
    """
    if last_checkin_date is None:
        return 1
    if last_checkin_date == today:
        # Same-day calls are rejected before reaching here; never double-count.
        return max(current_streak, 1)

    yesterday = today - timedelta(days=1)
    if last_checkin_date == yesterday:
        if yesterday.weekday() == SUNDAY:
            return 1
        return current_streak + 1
    return 1


def calculate_checkin_reward(new_streak: int, reward_per_day: int = 1) -> int:
    """Coins paid for reaching day *new_streak*."""
    return max(new_streak, 1) * reward_per_day
