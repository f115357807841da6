from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True, slots=True)
class ProgressionSnapshot:
    current_level_xp: int = 0
    level: int = 1
    total_xp: int = 0
    streak_count: int = 0
    last_completion_date: date | None = None
    applied_entries: dict[str, str] = field(default_factory=dict)
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class LedgerResult:
    snapshot: ProgressionSnapshot
    applied: bool
    levels_gained: int = 0


@dataclass(frozen=True, slots=True)
class ProgressionView:
    level: int
    current_level_xp: int
    required_xp: int
    progress_percent: float
    total_xp: int
    streak_count: int
