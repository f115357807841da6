from __future__ import annotations

from datetime import datetime, timedelta
from uuid import uuid4

import structlog

from xpduel.core.config import get_settings
from xpduel.economy.progression import ProgressionService
from xpduel.errors import XPDuelError
from xpduel.game.duels.constants import DuelSide, duel_entry_prefix
from xpduel.game.duels.errors import (
    DuelAccessError,
    DuelExpiredError,
    DuelInvalidInputError,
    DuelNotFoundError,
    DuelSettlementConflictError,
    DuelSlotAlreadyCompletedError,
    DuelStateError,
    InsufficientStakeError,
    NotFriendsError,
)
from xpduel.game.duels.repository import DuelRepo, LoadedDuel
from xpduel.game.duels.rules import (
    accept_duel,
    complete_slot,
    decide_outcome,
    expire_duel,
    forfeit_duel,
    is_archivable,
    is_due_for_expiry,
    new_pending_duel,
    require_side,
    same_outcome,
    validate_challenge,
)
from xpduel.game.duels.settlement import apply_settlement, escrow_stakes, refund_stakes
from xpduel.game.duels.types import (
    ActiveDuel,
    Duel,
    DuelParticipant,
    ExpiredDuel,
    ForfeitedDuel,
    PendingDuel,
    SweepResult,
    TerminalDuel,
    is_terminal,
)
from xpduel.social import FriendsService, ProfileService
from xpduel.store.base import ReplicatedStore
from xpduel.tasks.service import TaskService
from xpduel.tasks.types import Proof

logger = structlog.get_logger(__name__)


def _archive_grace() -> timedelta:
    return timedelta(seconds=max(0, int(get_settings().duel_archive_grace_seconds)))


def _require_state(duel: Duel, expected: type) -> None:
    if isinstance(duel, expected):
        return
    if isinstance(duel, ExpiredDuel):
        raise DuelExpiredError
    raise DuelStateError


class DuelService:
    """Duel lifecycle: challenge, accept, progress, settlement and cleanup.

    Nothing here relies on multi-key atomicity. Ledger effects are keyed per
    duel, history is write-once and the terminal outcome is claimed in the
    duel index before any XP moves, so every operation can be retried after a
    partial failure and converges on the same result.
    """

    @staticmethod
    async def _participant(store: ReplicatedStore, *, user_id: str) -> DuelParticipant:
        identity = await ProfileService.require_identity(store, user_id=user_id)
        return DuelParticipant(
            user_id=identity.user_id,
            email=identity.email,
            display_name=identity.display_name,
        )

    @staticmethod
    async def _materialize_tasks(
        store: ReplicatedStore,
        duel: Duel,
        *,
        side: DuelSide,
        now_utc: datetime,
    ) -> None:
        core = duel.core
        owner = core.participant(side)
        opponent = core.participant(side.other)
        for slot_index, slot in enumerate(core.tasks):
            await TaskService.create_duel_linked_task(
                store,
                owner_id=owner.user_id,
                description=slot.description,
                opponent_name=opponent.display_name,
                duel_id=core.duel_id,
                slot_index=slot_index,
                deadline=core.deadline,
                now_utc=now_utc,
            )

    @staticmethod
    async def _finalize(
        store: ReplicatedStore,
        terminal: TerminalDuel,
        *,
        now_utc: datetime,
    ) -> TerminalDuel:
        duel_id = terminal.core.duel_id
        claimed = await DuelRepo.get_settlement(store, duel_id=duel_id)
        if claimed is not None:
            if not same_outcome(claimed, terminal):
                logger.warning(
                    "duel_settlement_conflict",
                    duel_id=duel_id,
                    claimed_status=claimed.status.value,
                    attempted_status=terminal.status.value,
                )
                raise DuelSettlementConflictError
            terminal = claimed
        else:
            await DuelRepo.claim_settlement(store, terminal)
            # A racing claim may have overwritten ours; only the surviving one is applied.
            surviving = await DuelRepo.get_settlement(store, duel_id=duel_id)
            if surviving is None or not same_outcome(surviving, terminal):
                logger.warning(
                    "duel_settlement_claim_lost",
                    duel_id=duel_id,
                    attempted_status=terminal.status.value,
                    surviving_status=surviving.status.value if surviving is not None else None,
                )
                raise DuelSettlementConflictError

        await apply_settlement(store, terminal, now_utc=now_utc)
        await DuelRepo.save(store, terminal)
        logger.info(
            "duel_settled",
            duel_id=duel_id,
            status=terminal.status.value,
            winner_id=getattr(terminal, "winner_id", None),
            challenger_progress=terminal.core.challenger_progress,
            challenged_progress=terminal.core.challenged_progress,
        )
        return terminal

    @staticmethod
    async def _load(
        store: ReplicatedStore,
        *,
        duel_id: str,
        now_utc: datetime,
        user_id: str | None = None,
    ) -> tuple[Duel, LoadedDuel]:
        """Loads the reconciled duel and applies any transition that is already due.

        An interrupted settlement is completed first; then an active duel whose
        slots already decide it is settled; then an open duel past its deadline
        expires.
        """
        loaded = await DuelRepo.load(store, duel_id=duel_id, user_id=user_id)
        duel = loaded.duel
        if is_terminal(duel):
            return duel, loaded

        if loaded.settlement is not None:
            return await DuelService._finalize(store, loaded.settlement, now_utc=now_utc), loaded

        if isinstance(duel, ActiveDuel):
            decided = decide_outcome(duel, now_utc=now_utc, archive_grace=_archive_grace())
            if is_terminal(decided):
                return await DuelService._finalize(store, decided, now_utc=now_utc), loaded

        if is_due_for_expiry(duel, now_utc=now_utc):
            expired = expire_duel(duel, now_utc=now_utc, archive_grace=_archive_grace())
            logger.info(
                "duel_expired",
                duel_id=duel_id,
                previous_status=duel.status.value,
                deadline=duel.core.deadline.isoformat(),
            )
            return await DuelService._finalize(store, expired, now_utc=now_utc), loaded
        return duel, loaded

    @staticmethod
    async def challenge(
        store: ReplicatedStore,
        *,
        challenger_id: str,
        challenged_id: str,
        task_descriptions: list[str],
        stake_xp: int,
        duration_hours: int,
        now_utc: datetime,
    ) -> PendingDuel:
        descriptions = validate_challenge(
            task_descriptions=task_descriptions,
            stake_xp=stake_xp,
            duration_hours=duration_hours,
        )
        if challenger_id == challenged_id:
            raise DuelInvalidInputError("cannot challenge yourself")
        if not await FriendsService.are_friends(
            store,
            user_id=challenger_id,
            other_user_id=challenged_id,
        ):
            raise NotFriendsError

        challenger = await DuelService._participant(store, user_id=challenger_id)
        challenged = await DuelService._participant(store, user_id=challenged_id)
        # Checked only; escrow happens on acceptance.
        snapshot = await ProgressionService.get_snapshot(store, user_id=challenger_id)
        if snapshot.total_xp < stake_xp:
            raise InsufficientStakeError(challenger_id, stake_xp, snapshot.total_xp)

        duel = new_pending_duel(
            duel_id=uuid4().hex,
            challenger=challenger,
            challenged=challenged,
            task_descriptions=descriptions,
            stake_xp=stake_xp,
            duration_hours=duration_hours,
            now_utc=now_utc,
        )
        await DuelRepo.save(store, duel)
        await DuelService._materialize_tasks(
            store,
            duel,
            side=DuelSide.CHALLENGER,
            now_utc=now_utc,
        )
        logger.info(
            "duel_challenged",
            duel_id=duel.core.duel_id,
            challenger_id=challenger_id,
            challenged_id=challenged_id,
            task_count=duel.core.task_count,
            stake_xp=stake_xp,
            duration_hours=duration_hours,
        )
        return duel

    @staticmethod
    async def accept(
        store: ReplicatedStore,
        *,
        duel_id: str,
        user_id: str,
        now_utc: datetime,
    ) -> ActiveDuel:
        duel, _ = await DuelService._load(store, duel_id=duel_id, user_id=user_id, now_utc=now_utc)
        if require_side(duel, user_id) is not DuelSide.CHALLENGED:
            raise DuelAccessError
        _require_state(duel, PendingDuel)

        await escrow_stakes(store, duel, now_utc=now_utc)
        active = accept_duel(duel, now_utc=now_utc)
        await DuelRepo.save(store, active)
        for side in (DuelSide.CHALLENGED, DuelSide.CHALLENGER):
            await DuelService._materialize_tasks(store, active, side=side, now_utc=now_utc)
        logger.info(
            "duel_accepted",
            duel_id=duel_id,
            challenger_id=active.core.challenger.user_id,
            challenged_id=user_id,
            stake_xp=active.core.stake_xp,
        )
        return active

    @staticmethod
    async def reject(
        store: ReplicatedStore,
        *,
        duel_id: str,
        user_id: str,
        now_utc: datetime,
    ) -> None:
        duel, _ = await DuelService._load(store, duel_id=duel_id, user_id=user_id, now_utc=now_utc)
        if require_side(duel, user_id) is not DuelSide.CHALLENGED:
            raise DuelAccessError
        _require_state(duel, PendingDuel)

        # Only non-empty when an acceptance was cut short after escrow.
        refunded = await refund_stakes(store, duel, now_utc=now_utc)
        await DuelService._retire(store, duel)
        logger.info("duel_rejected", duel_id=duel_id, user_id=user_id, refunded=refunded)

    @staticmethod
    async def _record_slot(
        store: ReplicatedStore,
        duel: Duel,
        *,
        side: DuelSide,
        slot_index: int,
        proof: Proof,
        now_utc: datetime,
    ) -> Duel:
        _require_state(duel, ActiveDuel)
        updated = complete_slot(
            duel,
            side=side,
            slot_index=slot_index,
            proof=proof,
            now_utc=now_utc,
            archive_grace=_archive_grace(),
        )
        logger.info(
            "duel_slot_completed",
            duel_id=duel.core.duel_id,
            user_id=duel.core.participant(side).user_id,
            slot_index=slot_index,
            progress=updated.core.progress_of(side),
            task_count=updated.core.task_count,
        )
        if is_terminal(updated):
            return await DuelService._finalize(store, updated, now_utc=now_utc)
        return await DuelRepo.save(store, updated)

    @staticmethod
    async def complete_slot(
        store: ReplicatedStore,
        *,
        duel_id: str,
        user_id: str,
        slot_index: int,
        now_utc: datetime,
        proof_text: str | None = None,
        proof_image_url: str | None = None,
    ) -> Duel:
        duel, _ = await DuelService._load(store, duel_id=duel_id, user_id=user_id, now_utc=now_utc)
        side = require_side(duel, user_id)
        return await DuelService._record_slot(
            store,
            duel,
            side=side,
            slot_index=slot_index,
            proof=Proof(submitted_at=now_utc, text=proof_text, image_url=proof_image_url),
            now_utc=now_utc,
        )

    @staticmethod
    async def on_duel_task_completed(
        store: ReplicatedStore,
        *,
        owner_id: str,
        duel_id: str,
        slot_index: int,
        proof: Proof,
        now_utc: datetime,
    ) -> Duel:
        """Entry point for a completed duel-linked personal task."""
        duel, _ = await DuelService._load(store, duel_id=duel_id, user_id=owner_id, now_utc=now_utc)
        side = require_side(duel, owner_id)
        tasks = duel.core.tasks
        # A slot this side already holds is reported the same way in every state.
        if 0 <= slot_index < len(tasks) and tasks[slot_index].completed_by(side):
            raise DuelSlotAlreadyCompletedError
        return await DuelService._record_slot(
            store,
            duel,
            side=side,
            slot_index=slot_index,
            proof=proof,
            now_utc=now_utc,
        )

    @staticmethod
    async def forfeit(
        store: ReplicatedStore,
        *,
        duel_id: str,
        user_id: str,
        now_utc: datetime,
    ) -> ForfeitedDuel:
        duel, _ = await DuelService._load(store, duel_id=duel_id, user_id=user_id, now_utc=now_utc)
        side = require_side(duel, user_id)
        _require_state(duel, ActiveDuel)
        forfeited = forfeit_duel(duel, side=side, now_utc=now_utc, archive_grace=_archive_grace())
        logger.info("duel_forfeit_requested", duel_id=duel_id, user_id=user_id)
        return await DuelService._finalize(store, forfeited, now_utc=now_utc)

    @staticmethod
    async def get_for_user(
        store: ReplicatedStore,
        *,
        duel_id: str,
        user_id: str,
        now_utc: datetime,
    ) -> Duel:
        duel, _ = await DuelService._load(store, duel_id=duel_id, user_id=user_id, now_utc=now_utc)
        require_side(duel, user_id)
        return duel

    @staticmethod
    async def expire_if_due(store: ReplicatedStore, *, duel_id: str, now_utc: datetime) -> Duel:
        duel, _ = await DuelService._load(store, duel_id=duel_id, now_utc=now_utc)
        return duel

    @staticmethod
    async def reconcile(store: ReplicatedStore, *, duel_id: str, now_utc: datetime) -> Duel:
        """Converges both copies and finishes any transition left half-done."""
        duel, loaded = await DuelService._load(store, duel_id=duel_id, now_utc=now_utc)
        if loaded.repaired:
            logger.info("duel_reconciled", duel_id=duel_id, status=duel.status.value)
        return duel

    @staticmethod
    async def _retire(store: ReplicatedStore, duel: Duel) -> None:
        core = duel.core
        for participant in (core.challenger, core.challenged):
            await TaskService.retire_duel_tasks(
                store,
                owner_id=participant.user_id,
                duel_id=core.duel_id,
            )
        await DuelRepo.delete(store, duel)
        # Ledger keys only guard replays of a duel that can still be loaded.
        for participant in (core.challenger, core.challenged):
            await ProgressionService.forget_entries(
                store,
                user_id=participant.user_id,
                entry_key_prefix=duel_entry_prefix(core.duel_id),
            )

    @staticmethod
    async def sweep(
        store: ReplicatedStore,
        *,
        now_utc: datetime,
        batch_size: int | None = None,
    ) -> SweepResult:
        """Expires overdue duels, finishes claimed settlements and archives terminal duels."""
        resolved_batch_size = max(1, int(batch_size or get_settings().duel_sweep_batch_size))
        duel_ids = await DuelRepo.list_due_for_sweep(
            store,
            now_utc=now_utc,
            limit=resolved_batch_size,
        )
        expired = settled = archived = repaired = failed = 0
        for duel_id in duel_ids:
            try:
                duel, loaded = await DuelService._load(store, duel_id=duel_id, now_utc=now_utc)
            except DuelNotFoundError:
                repaired += 1
                continue
            except XPDuelError:
                failed += 1
                logger.exception("duel_sweep_item_failed", duel_id=duel_id)
                continue

            if loaded.repaired:
                repaired += 1
            if duel is not loaded.duel and is_terminal(duel):
                if isinstance(duel, ExpiredDuel):
                    expired += 1
                else:
                    settled += 1
            if is_archivable(duel, now_utc=now_utc):
                await DuelService._retire(store, duel)
                archived += 1
                logger.info("duel_archived", duel_id=duel_id, status=duel.status.value)

        return SweepResult(
            scanned=len(duel_ids),
            expired=expired,
            settled=settled,
            archived=archived,
            repaired=repaired,
            failed=failed,
        )
