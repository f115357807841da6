from __future__ import annotations

from enum import Enum

DUEL_MIN_TASKS = 1
DUEL_MAX_TASKS = 10
DUEL_MIN_STAKE_XP = 10
DUEL_MIN_DURATION_HOURS = 1
DUEL_MAX_DURATION_HOURS = 72
DUEL_PAYOUT_MULTIPLIER = 2


class DuelStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FORFEITED = "forfeited"
    EXPIRED = "expired"
    DRAWN = "drawn"


class DuelSide(str, Enum):
    CHALLENGER = "challenger"
    CHALLENGED = "challenged"

    @property
    def other(self) -> "DuelSide":
        return DuelSide.CHALLENGED if self is DuelSide.CHALLENGER else DuelSide.CHALLENGER


class HistoryResult(str, Enum):
    WIN = "win"
    LOSS = "loss"
    FORFEIT = "forfeit"
    DRAW = "draw"
    EXPIRED = "expired"


class HistoryMethod(str, Enum):
    COMPLETION = "completion"
    FORFEIT = "forfeit"
    EXPIRY = "expiry"


DUEL_TERMINAL_STATUSES: frozenset[DuelStatus] = frozenset(
    {
        DuelStatus.COMPLETED,
        DuelStatus.FORFEITED,
        DuelStatus.EXPIRED,
        DuelStatus.DRAWN,
    }
)

# Copies are merged towards the more advanced status.
DUEL_STATUS_RANK: dict[DuelStatus, int] = {
    DuelStatus.PENDING: 0,
    DuelStatus.ACTIVE: 1,
    DuelStatus.COMPLETED: 2,
    DuelStatus.FORFEITED: 2,
    DuelStatus.EXPIRED: 2,
    DuelStatus.DRAWN: 2,
}


def is_terminal_status(status: DuelStatus) -> bool:
    return status in DUEL_TERMINAL_STATUSES


def stake_entry_key(duel_id: str, user_id: str) -> str:
    return f"duel:{duel_id}:stake:{user_id}"


def payout_entry_key(duel_id: str) -> str:
    return f"duel:{duel_id}:payout"


def refund_entry_key(duel_id: str, user_id: str) -> str:
    return f"duel:{duel_id}:refund:{user_id}"


def duel_entry_prefix(duel_id: str) -> str:
    return f"duel:{duel_id}:"
