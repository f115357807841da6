from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import ClassVar, Union

from xpduel.game.duels.constants import DuelSide, DuelStatus, HistoryMethod, HistoryResult
from xpduel.tasks.types import Proof


@dataclass(frozen=True, slots=True)
class DuelParticipant:
    user_id: str
    email: str
    display_name: str


@dataclass(frozen=True, slots=True)
class DuelTaskSlot:
    description: str
    completed_by_challenger: bool = False
    completed_by_challenged: bool = False
    challenger_proof: Proof | None = None
    challenged_proof: Proof | None = None

    def completed_by(self, side: DuelSide) -> bool:
        if side is DuelSide.CHALLENGER:
            return self.completed_by_challenger
        return self.completed_by_challenged

    def proof_of(self, side: DuelSide) -> Proof | None:
        if side is DuelSide.CHALLENGER:
            return self.challenger_proof
        return self.challenged_proof


@dataclass(frozen=True, slots=True)
class DuelCore:
    """Fields shared by every duel state. Progress is always derived from slots."""

    duel_id: str
    challenger: DuelParticipant
    challenged: DuelParticipant
    tasks: tuple[DuelTaskSlot, ...]
    stake_xp: int
    duration_hours: int
    sent_at: datetime
    updated_at: datetime

    @property
    def deadline(self) -> datetime:
        return self.sent_at + timedelta(hours=self.duration_hours)

    @property
    def task_count(self) -> int:
        return len(self.tasks)

    @property
    def challenger_progress(self) -> int:
        return sum(1 for slot in self.tasks if slot.completed_by_challenger)

    @property
    def challenged_progress(self) -> int:
        return sum(1 for slot in self.tasks if slot.completed_by_challenged)

    def progress_of(self, side: DuelSide) -> int:
        if side is DuelSide.CHALLENGER:
            return self.challenger_progress
        return self.challenged_progress

    def participant(self, side: DuelSide) -> DuelParticipant:
        return self.challenger if side is DuelSide.CHALLENGER else self.challenged

    def side_of(self, user_id: str) -> DuelSide | None:
        if user_id == self.challenger.user_id:
            return DuelSide.CHALLENGER
        if user_id == self.challenged.user_id:
            return DuelSide.CHALLENGED
        return None


@dataclass(frozen=True, slots=True)
class PendingDuel:
    status: ClassVar[DuelStatus] = DuelStatus.PENDING
    core: DuelCore


@dataclass(frozen=True, slots=True)
class ActiveDuel:
    status: ClassVar[DuelStatus] = DuelStatus.ACTIVE
    core: DuelCore
    accepted_at: datetime


@dataclass(frozen=True, slots=True)
class CompletedDuel:
    status: ClassVar[DuelStatus] = DuelStatus.COMPLETED
    core: DuelCore
    accepted_at: datetime
    winner_id: str
    completed_at: datetime
    archive_after: datetime


@dataclass(frozen=True, slots=True)
class ForfeitedDuel:
    status: ClassVar[DuelStatus] = DuelStatus.FORFEITED
    core: DuelCore
    accepted_at: datetime
    winner_id: str
    forfeited_by: str
    completed_at: datetime
    archive_after: datetime


@dataclass(frozen=True, slots=True)
class DrawnDuel:
    status: ClassVar[DuelStatus] = DuelStatus.DRAWN
    core: DuelCore
    accepted_at: datetime
    completed_at: datetime
    archive_after: datetime


@dataclass(frozen=True, slots=True)
class ExpiredDuel:
    status: ClassVar[DuelStatus] = DuelStatus.EXPIRED
    core: DuelCore
    accepted_at: datetime | None
    completed_at: datetime
    archive_after: datetime

    @property
    def stake_escrowed(self) -> bool:
        return self.accepted_at is not None


OpenDuel = Union[PendingDuel, ActiveDuel]
TerminalDuel = Union[CompletedDuel, ForfeitedDuel, DrawnDuel, ExpiredDuel]
Duel = Union[PendingDuel, ActiveDuel, CompletedDuel, ForfeitedDuel, DrawnDuel, ExpiredDuel]

TERMINAL_DUEL_TYPES = (CompletedDuel, ForfeitedDuel, DrawnDuel, ExpiredDuel)


def is_terminal(duel: Duel) -> bool:
    return isinstance(duel, TERMINAL_DUEL_TYPES)


def winner_of(duel: Duel) -> str | None:
    if isinstance(duel, (CompletedDuel, ForfeitedDuel)):
        return duel.winner_id
    return None


@dataclass(frozen=True, slots=True)
class DuelHistoryEntry:
    duel_id: str
    user_id: str
    result: HistoryResult
    method: HistoryMethod
    xp_delta: int
    opponent_name: str
    completed_at: datetime


@dataclass(frozen=True, slots=True)
class DuelStats:
    wins: int = 0
    losses: int = 0
    forfeits: int = 0
    draws: int = 0
    expired: int = 0


@dataclass(frozen=True, slots=True)
class DuelView:
    duel_id: str
    status: DuelStatus
    role: DuelSide
    opponent: DuelParticipant
    tasks: tuple[DuelTaskSlot, ...]
    own_progress: int
    opponent_progress: int
    task_count: int
    stake_xp: int
    deadline: datetime
    time_remaining_label: str
    winner_id: str | None
    is_winner: bool | None


@dataclass(frozen=True, slots=True)
class SweepResult:
    scanned: int = 0
    expired: int = 0
    settled: int = 0
    archived: int = 0
    repaired: int = 0
    failed: int = 0
