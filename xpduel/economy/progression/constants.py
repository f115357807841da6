from __future__ import annotations

from xpduel.tasks.types import TaskPriority

XP_LEVEL_MULTIPLIER = 10
STEPS_BONUS_XP = 5

PRIORITY_XP: dict[TaskPriority, int] = {
    TaskPriority.LOW: 5,
    TaskPriority.MEDIUM: 10,
    TaskPriority.HIGH: 20,
}
