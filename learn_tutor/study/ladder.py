"""
Fixed interval ladders.

Learning-phase cards index ``LEARNING_STEPS_MINUTES`` with their
``step_index``; review-phase cards index ``REVIEW_INTERVAL_DAYS``. The tables
are never merged: graduating re-interprets ``step_index`` against the days
table. Stored schedules depend on these exact values.

Review progression (step_index):
    0: Day 0   (same day)
    1: Day 1
    2: Day 4
    3: Day 10
    4: Day 25
    5: Day 60
    6: Day 150
    7: Day 365
"""

from __future__ import annotations

from datetime import datetime, timedelta

LEARNING_STEPS_MINUTES: tuple[int, ...] = (1, 10)
REVIEW_INTERVAL_DAYS: tuple[int, ...] = (0, 1, 4, 10, 25, 60, 150, 365)

# Delay after a lapse, independent of the learning table
RELEARN_DELAY_MINUTES = 10

# Review slots entered on graduation
GRADUATE_STEP = 1
EASY_GRADUATE_STEP = 2

MAX_LEARNING_STEP = len(LEARNING_STEPS_MINUTES) - 1
MAX_REVIEW_STEP = len(REVIEW_INTERVAL_DAYS) - 1


def learning_delay(step_index: int) -> int:
    """Minutes for a learning step, clamped to the last step."""
    return LEARNING_STEPS_MINUTES[min(max(step_index, 0), MAX_LEARNING_STEP)]


def review_interval(step_index: int) -> int:
    """Days for a review step, clamped to the last step."""
    return REVIEW_INTERVAL_DAYS[min(max(step_index, 0), MAX_REVIEW_STEP)]


def add_minutes(moment: datetime, minutes: float) -> datetime:
    return moment + timedelta(minutes=minutes)


def add_days(moment: datetime, days: float) -> datetime:
    return moment + timedelta(days=days)
