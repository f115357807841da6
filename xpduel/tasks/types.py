from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


PRIORITY_ORDER: dict[TaskPriority, int] = {
    TaskPriority.HIGH: 3,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 1,
}


@dataclass(frozen=True, slots=True)
class TaskStep:
    step_id: str
    text: str
    completed: bool = False


@dataclass(frozen=True, slots=True)
class Proof:
    submitted_at: datetime
    text: str | None = None
    image_url: str | None = None


@dataclass(frozen=True, slots=True)
class Task:
    task_id: str
    owner_id: str
    text: str
    priority: TaskPriority
    due_date: date
    created_at: datetime
    updated_at: datetime
    completed: bool = False
    completed_at: datetime | None = None
    xp_awarded: int = 0
    steps: tuple[TaskStep, ...] = field(default_factory=tuple)
    duel_id: str | None = None
    slot_index: int | None = None
    proof: Proof | None = None

    @property
    def is_duel_linked(self) -> bool:
        return self.duel_id is not None


@dataclass(frozen=True, slots=True)
class TaskStats:
    total: int
    active: int
    completed: int


@dataclass(frozen=True, slots=True)
class TaskCompletionResult:
    task: Task
    xp_awarded: int
    overdue: bool
    routed_to_duel: bool = False
