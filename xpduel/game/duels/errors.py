from xpduel.errors import (
    InvalidInputError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
    XPDuelError,
)
from xpduel.social.errors import NotFriendsError


class DuelNotFoundError(NotFoundError):
    message = "Duel not found."


class DuelStateError(PreconditionFailedError):
    message = "The duel is not in a state that allows this action."


class DuelExpiredError(DuelStateError):
    message = "The duel deadline has passed."


class DuelSlotAlreadyCompletedError(DuelStateError):
    message = "You already completed this duel task."


class DuelSettlementConflictError(DuelStateError):
    message = "The duel is already being settled with a different outcome."


class DuelInvalidInputError(InvalidInputError):
    message = "Duels need 1-10 tasks, a stake of at least 10 XP and at most 72 hours."


class DuelAccessError(UnauthorizedError):
    message = "Only duel participants can do this."


class InsufficientStakeError(XPDuelError):
    message = "Not enough XP to cover the stake."

    def __init__(self, user_id: str, required_xp: int, available_xp: int) -> None:
        super().__init__(f"{user_id} has {available_xp}/{required_xp} XP")
        self.user_id = user_id
        self.required_xp = required_xp
        self.available_xp = available_xp


__all__ = [
    "DuelAccessError",
    "DuelExpiredError",
    "DuelInvalidInputError",
    "DuelNotFoundError",
    "DuelSettlementConflictError",
    "DuelSlotAlreadyCompletedError",
    "DuelStateError",
    "InsufficientStakeError",
    "NotFriendsError",
]
