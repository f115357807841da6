from __future__ import annotations

from datetime import datetime

import structlog

from xpduel.economy.progression import ProgressionService
from xpduel.economy.progression.errors import InsufficientFundsError
from xpduel.game.duels.codec import encode_history_entry
from xpduel.game.duels.constants import payout_entry_key, refund_entry_key, stake_entry_key
from xpduel.game.duels.errors import InsufficientStakeError
from xpduel.game.duels.rules import history_entries, payout_xp
from xpduel.game.duels.types import (
    CompletedDuel,
    Duel,
    ForfeitedDuel,
    PendingDuel,
    TerminalDuel,
)
from xpduel.store import keys
from xpduel.store.base import ReplicatedStore

logger = structlog.get_logger(__name__)


async def escrow_stakes(store: ReplicatedStore, duel: PendingDuel, *, now_utc: datetime) -> None:
    """Deducts the stake from both participants, at most once each.

    Both balances are checked before anything is written. A stake already
    taken by an earlier attempt is not checked again.
    """
    core = duel.core
    participants = (core.challenger.user_id, core.challenged.user_id)
    to_charge: list[str] = []
    for user_id in participants:
        entry_key = stake_entry_key(core.duel_id, user_id)
        snapshot = await ProgressionService.get_snapshot(store, user_id=user_id)
        if entry_key in snapshot.applied_entries:
            continue
        if snapshot.total_xp < core.stake_xp:
            raise InsufficientStakeError(user_id, core.stake_xp, snapshot.total_xp)
        to_charge.append(user_id)

    for user_id in to_charge:
        try:
            await ProgressionService.deduct(
                store,
                user_id=user_id,
                xp=core.stake_xp,
                now_utc=now_utc,
                entry_key=stake_entry_key(core.duel_id, user_id),
            )
        except InsufficientFundsError as exc:
            # Balance moved between the check and the deduction.
            snapshot = await ProgressionService.get_snapshot(store, user_id=user_id)
            raise InsufficientStakeError(user_id, core.stake_xp, snapshot.total_xp) from exc


async def refund_stakes(store: ReplicatedStore, duel: Duel, *, now_utc: datetime) -> list[str]:
    """Returns escrowed stakes; only users whose stake was actually taken get one."""
    core = duel.core
    refunded: list[str] = []
    for user_id in (core.challenger.user_id, core.challenged.user_id):
        escrowed = await ProgressionService.has_entry(
            store,
            user_id=user_id,
            entry_key=stake_entry_key(core.duel_id, user_id),
        )
        if not escrowed:
            continue
        result = await ProgressionService.refund(
            store,
            user_id=user_id,
            xp=core.stake_xp,
            now_utc=now_utc,
            entry_key=refund_entry_key(core.duel_id, user_id),
        )
        if result.applied:
            refunded.append(user_id)
    return refunded


async def pay_winner(
    store: ReplicatedStore,
    duel: CompletedDuel | ForfeitedDuel,
    *,
    now_utc: datetime,
) -> bool:
    """Pays ``2 x stake`` once per duel, whichever participant a claim names.

    The payout key is recorded in both participants' records, so a second
    claim naming the other participant finds it and pays nothing.
    """
    core = duel.core
    entry_key = payout_entry_key(core.duel_id)
    participants = (core.challenger.user_id, core.challenged.user_id)
    for user_id in participants:
        if user_id == duel.winner_id:
            continue
        if await ProgressionService.has_entry(store, user_id=user_id, entry_key=entry_key):
            logger.info(
                "duel_payout_already_recorded",
                duel_id=core.duel_id,
                winner_id=duel.winner_id,
                recorded_by=user_id,
            )
            return False

    result = await ProgressionService.award(
        store,
        user_id=duel.winner_id,
        xp=payout_xp(core.stake_xp),
        now_utc=now_utc,
        entry_key=entry_key,
    )
    for user_id in participants:
        if user_id != duel.winner_id:
            await ProgressionService.mark_entry(
                store,
                user_id=user_id,
                entry_key=entry_key,
                now_utc=now_utc,
            )
    return result.applied


async def write_history(store: ReplicatedStore, duel: TerminalDuel) -> int:
    written = 0
    for entry in history_entries(duel):
        key = keys.duel_history_key(entry.user_id, entry.duel_id)
        if await store.read(key) is not None:
            continue
        await store.write(key, encode_history_entry(entry))
        written += 1
    return written


async def apply_settlement(
    store: ReplicatedStore,
    duel: TerminalDuel,
    *,
    now_utc: datetime,
) -> None:
    """Applies every XP effect and history entry of a terminal duel.

    Safe to repeat: ledger entries are keyed by duel and history is write-once.
    """
    core = duel.core
    if isinstance(duel, (CompletedDuel, ForfeitedDuel)):
        await pay_winner(store, duel, now_utc=now_utc)
        refunded: list[str] = []
    else:
        refunded = await refund_stakes(store, duel, now_utc=now_utc)

    history_written = await write_history(store, duel)
    logger.info(
        "duel_settlement_applied",
        duel_id=core.duel_id,
        status=duel.status.value,
        winner_id=getattr(duel, "winner_id", None),
        stake_xp=core.stake_xp,
        refunded=refunded,
        history_written=history_written,
    )
