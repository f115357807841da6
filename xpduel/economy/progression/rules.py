from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

from xpduel.economy.progression.constants import PRIORITY_XP, STEPS_BONUS_XP, XP_LEVEL_MULTIPLIER
from xpduel.economy.progression.errors import InsufficientFundsError
from xpduel.economy.progression.types import ProgressionSnapshot, ProgressionView
from xpduel.tasks.types import TaskPriority


def required_xp(level: int) -> int:
    if level < 1:
        raise ValueError("level must be >= 1")
    return level * level * XP_LEVEL_MULTIPLIER


def cascade_levels(*, current_level_xp: int, level: int) -> tuple[int, int]:
    # Each step consumes the requirement of the level being left.
    while current_level_xp >= required_xp(level):
        current_level_xp -= required_xp(level)
        level += 1
    return current_level_xp, level


def apply_award(snapshot: ProgressionSnapshot, xp: int) -> ProgressionSnapshot:
    if xp < 0:
        raise ValueError("award must be non-negative")
    current_level_xp, level = cascade_levels(
        current_level_xp=snapshot.current_level_xp + xp,
        level=snapshot.level,
    )
    return replace(
        snapshot,
        current_level_xp=current_level_xp,
        level=level,
        total_xp=snapshot.total_xp + xp,
    )


def apply_deduct(snapshot: ProgressionSnapshot, xp: int) -> ProgressionSnapshot:
    """Takes XP out of the lifetime total only; level progress is untouched."""
    if xp < 0:
        raise ValueError("deduction must be non-negative")
    if snapshot.total_xp < xp:
        raise InsufficientFundsError
    return replace(snapshot, total_xp=snapshot.total_xp - xp)


def apply_refund(snapshot: ProgressionSnapshot, xp: int) -> ProgressionSnapshot:
    if xp < 0:
        raise ValueError("refund must be non-negative")
    return replace(snapshot, total_xp=snapshot.total_xp + xp)


def xp_for_completion(priority: TaskPriority, *, has_steps: bool) -> int:
    return PRIORITY_XP[TaskPriority(priority)] + (STEPS_BONUS_XP if has_steps else 0)


def apply_streak(snapshot: ProgressionSnapshot, *, today: date) -> ProgressionSnapshot:
    yesterday = today - timedelta(days=1)
    if snapshot.last_completion_date == yesterday:
        streak = snapshot.streak_count + 1
    elif snapshot.last_completion_date == today:
        streak = snapshot.streak_count
    else:
        streak = 1
    return replace(snapshot, streak_count=streak, last_completion_date=today)


def is_overdue(due_date: date, *, today: date) -> bool:
    return due_date < today


def build_progression_view(snapshot: ProgressionSnapshot) -> ProgressionView:
    needed = required_xp(snapshot.level)
    return ProgressionView(
        level=snapshot.level,
        current_level_xp=snapshot.current_level_xp,
        required_xp=needed,
        progress_percent=min(snapshot.current_level_xp / needed * 100, 100.0),
        total_xp=snapshot.total_xp,
        streak_count=snapshot.streak_count,
    )
