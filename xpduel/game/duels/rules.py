from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from xpduel.game.duels.constants import (
    DUEL_MAX_DURATION_HOURS,
    DUEL_MAX_TASKS,
    DUEL_MIN_DURATION_HOURS,
    DUEL_MIN_STAKE_XP,
    DUEL_MIN_TASKS,
    DUEL_PAYOUT_MULTIPLIER,
    DUEL_STATUS_RANK,
    DuelSide,
    HistoryMethod,
    HistoryResult,
)
from xpduel.game.duels.errors import (
    DuelAccessError,
    DuelInvalidInputError,
    DuelSlotAlreadyCompletedError,
)
from xpduel.game.duels.types import (
    ActiveDuel,
    CompletedDuel,
    DrawnDuel,
    Duel,
    DuelCore,
    DuelHistoryEntry,
    DuelParticipant,
    DuelTaskSlot,
    ExpiredDuel,
    ForfeitedDuel,
    OpenDuel,
    PendingDuel,
    TerminalDuel,
    is_terminal,
)
from xpduel.tasks.types import Proof


def validate_challenge(
    *,
    task_descriptions: list[str],
    stake_xp: int,
    duration_hours: int,
) -> tuple[str, ...]:
    descriptions = tuple(item.strip() for item in task_descriptions if item and item.strip())
    if len(descriptions) != len(task_descriptions):
        raise DuelInvalidInputError
    if not DUEL_MIN_TASKS <= len(descriptions) <= DUEL_MAX_TASKS:
        raise DuelInvalidInputError
    if stake_xp < DUEL_MIN_STAKE_XP:
        raise DuelInvalidInputError
    if not DUEL_MIN_DURATION_HOURS <= duration_hours <= DUEL_MAX_DURATION_HOURS:
        raise DuelInvalidInputError
    return descriptions


def new_pending_duel(
    *,
    duel_id: str,
    challenger: DuelParticipant,
    challenged: DuelParticipant,
    task_descriptions: tuple[str, ...],
    stake_xp: int,
    duration_hours: int,
    now_utc: datetime,
) -> PendingDuel:
    return PendingDuel(
        core=DuelCore(
            duel_id=duel_id,
            challenger=challenger,
            challenged=challenged,
            tasks=tuple(DuelTaskSlot(description=text) for text in task_descriptions),
            stake_xp=stake_xp,
            duration_hours=duration_hours,
            sent_at=now_utc,
            updated_at=now_utc,
        )
    )


def require_side(duel: Duel, user_id: str) -> DuelSide:
    side = duel.core.side_of(user_id)
    if side is None:
        raise DuelAccessError
    return side


def payout_xp(stake_xp: int) -> int:
    return stake_xp * DUEL_PAYOUT_MULTIPLIER


def accept_duel(duel: PendingDuel, *, now_utc: datetime) -> ActiveDuel:
    return ActiveDuel(core=replace(duel.core, updated_at=now_utc), accepted_at=now_utc)


def _mark_slot(slot: DuelTaskSlot, *, side: DuelSide, proof: Proof) -> DuelTaskSlot:
    if side is DuelSide.CHALLENGER:
        return replace(slot, completed_by_challenger=True, challenger_proof=proof)
    return replace(slot, completed_by_challenged=True, challenged_proof=proof)


def decide_outcome(
    duel: ActiveDuel,
    *,
    now_utc: datetime,
    archive_grace: timedelta,
) -> Duel:
    """Closes an active duel once either side has finished every slot.

    A side wins only while the other is strictly behind; both finished is a draw.
    """
    core = duel.core
    challenger_done = core.challenger_progress >= core.task_count
    challenged_done = core.challenged_progress >= core.task_count
    if not challenger_done and not challenged_done:
        return duel

    settled_core = replace(core, updated_at=now_utc)
    archive_after = now_utc + archive_grace
    if challenger_done and challenged_done:
        return DrawnDuel(
            core=settled_core,
            accepted_at=duel.accepted_at,
            completed_at=now_utc,
            archive_after=archive_after,
        )
    winner = core.challenger if challenger_done else core.challenged
    return CompletedDuel(
        core=settled_core,
        accepted_at=duel.accepted_at,
        winner_id=winner.user_id,
        completed_at=now_utc,
        archive_after=archive_after,
    )


def complete_slot(
    duel: ActiveDuel,
    *,
    side: DuelSide,
    slot_index: int,
    proof: Proof,
    now_utc: datetime,
    archive_grace: timedelta,
) -> Duel:
    if not 0 <= slot_index < duel.core.task_count:
        raise DuelInvalidInputError("slot index out of range")
    slot = duel.core.tasks[slot_index]
    if slot.completed_by(side):
        raise DuelSlotAlreadyCompletedError

    tasks = list(duel.core.tasks)
    tasks[slot_index] = _mark_slot(slot, side=side, proof=replace(proof, submitted_at=now_utc))
    progressed = replace(
        duel,
        core=replace(duel.core, tasks=tuple(tasks), updated_at=now_utc),
    )
    return decide_outcome(progressed, now_utc=now_utc, archive_grace=archive_grace)


def forfeit_duel(
    duel: ActiveDuel,
    *,
    side: DuelSide,
    now_utc: datetime,
    archive_grace: timedelta,
) -> ForfeitedDuel:
    core = duel.core
    return ForfeitedDuel(
        core=replace(core, updated_at=now_utc),
        accepted_at=duel.accepted_at,
        winner_id=core.participant(side.other).user_id,
        forfeited_by=core.participant(side).user_id,
        completed_at=now_utc,
        archive_after=now_utc + archive_grace,
    )


def expire_duel(duel: OpenDuel, *, now_utc: datetime, archive_grace: timedelta) -> ExpiredDuel:
    return ExpiredDuel(
        core=replace(duel.core, updated_at=now_utc),
        accepted_at=duel.accepted_at if isinstance(duel, ActiveDuel) else None,
        completed_at=now_utc,
        archive_after=now_utc + archive_grace,
    )


def is_due_for_expiry(duel: Duel, *, now_utc: datetime) -> bool:
    return not is_terminal(duel) and now_utc > duel.core.deadline


def is_archivable(duel: Duel, *, now_utc: datetime) -> bool:
    return is_terminal(duel) and now_utc >= duel.archive_after


def same_outcome(first: TerminalDuel, second: TerminalDuel) -> bool:
    return first.status is second.status and getattr(first, "winner_id", None) == getattr(
        second, "winner_id", None
    )


def _earliest_proof(first: Proof | None, second: Proof | None) -> Proof | None:
    if first is None or second is None:
        return first or second
    return first if first.submitted_at <= second.submitted_at else second


def _merge_slot(first: DuelTaskSlot, second: DuelTaskSlot) -> DuelTaskSlot:
    return replace(
        first,
        completed_by_challenger=first.completed_by_challenger or second.completed_by_challenger,
        completed_by_challenged=first.completed_by_challenged or second.completed_by_challenged,
        challenger_proof=_earliest_proof(first.challenger_proof, second.challenger_proof),
        challenged_proof=_earliest_proof(first.challenged_proof, second.challenged_proof),
    )


def merge_copies(first: Duel, second: Duel) -> Duel:
    """Converges two copies of one duel into a single state.

    The more advanced status wins. Open copies pool their slot flags, so a
    completion that reached only one copy is never lost. Two different terminal
    copies fall back to the most recently updated one.
    """
    first_rank = DUEL_STATUS_RANK[first.status]
    second_rank = DUEL_STATUS_RANK[second.status]
    if first_rank != second_rank:
        base, other = (first, second) if first_rank > second_rank else (second, first)
    elif first.core.updated_at >= second.core.updated_at:
        base, other = first, second
    else:
        base, other = second, first

    if is_terminal(base):
        return base
    if len(base.core.tasks) != len(other.core.tasks):
        return base

    tasks = tuple(
        _merge_slot(mine, theirs) for mine, theirs in zip(base.core.tasks, other.core.tasks)
    )
    core = replace(
        base.core,
        tasks=tasks,
        updated_at=max(base.core.updated_at, other.core.updated_at),
    )
    if isinstance(base, ActiveDuel) and isinstance(other, ActiveDuel):
        return ActiveDuel(core=core, accepted_at=min(base.accepted_at, other.accepted_at))
    return replace(base, core=core)


def history_entries(duel: TerminalDuel) -> list[DuelHistoryEntry]:
    """One entry per participant; an unaccepted expiry leaves no history."""
    core = duel.core
    if isinstance(duel, ExpiredDuel) and not duel.stake_escrowed:
        return []

    entries: list[DuelHistoryEntry] = []
    for side in (DuelSide.CHALLENGER, DuelSide.CHALLENGED):
        me = core.participant(side)
        opponent = core.participant(side.other)
        if isinstance(duel, CompletedDuel):
            won = duel.winner_id == me.user_id
            result = HistoryResult.WIN if won else HistoryResult.LOSS
            method = HistoryMethod.COMPLETION
            xp_delta = payout_xp(core.stake_xp) if won else -core.stake_xp
        elif isinstance(duel, ForfeitedDuel):
            won = duel.winner_id == me.user_id
            result = HistoryResult.WIN if won else HistoryResult.FORFEIT
            method = HistoryMethod.FORFEIT
            xp_delta = payout_xp(core.stake_xp) if won else -core.stake_xp
        elif isinstance(duel, DrawnDuel):
            result = HistoryResult.DRAW
            method = HistoryMethod.COMPLETION
            xp_delta = 0
        else:
            result = HistoryResult.EXPIRED
            method = HistoryMethod.EXPIRY
            xp_delta = 0
        entries.append(
            DuelHistoryEntry(
                duel_id=core.duel_id,
                user_id=me.user_id,
                result=result,
                method=method,
                xp_delta=xp_delta,
                opponent_name=opponent.display_name,
                completed_at=duel.completed_at,
            )
        )
    return entries


def time_remaining_label(*, deadline: datetime, now_utc: datetime) -> str:
    remaining_seconds = int((deadline - now_utc).total_seconds())
    if remaining_seconds <= 0:
        return "Expired"
    hours, minutes = remaining_seconds // 3600, (remaining_seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m left"
    return f"{minutes}m left"
