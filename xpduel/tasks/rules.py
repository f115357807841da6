from __future__ import annotations

from xpduel.tasks.types import PRIORITY_ORDER, Task, TaskStats

DUEL_TASK_ID_PREFIX = "duel"


def duel_task_id(duel_id: str, slot_index: int) -> str:
    return f"{DUEL_TASK_ID_PREFIX}-{duel_id}-{slot_index}"


def duel_task_text(*, opponent_name: str, description: str) -> str:
    return f"Duel with {opponent_name}: {description}"


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """Highest priority first, then earliest due date."""
    return sorted(tasks, key=lambda task: (-PRIORITY_ORDER[task.priority], task.due_date))


def build_task_stats(tasks: list[Task]) -> TaskStats:
    completed = sum(1 for task in tasks if task.completed)
    return TaskStats(total=len(tasks), active=len(tasks) - completed, completed=completed)
