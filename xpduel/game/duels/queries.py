from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import structlog

from xpduel.game.duels.codec import decode_history_entry
from xpduel.game.duels.constants import HistoryResult
from xpduel.game.duels.errors import DuelNotFoundError
from xpduel.game.duels.repository import INCOMING, OUTGOING, DuelRepo
from xpduel.game.duels.rules import is_due_for_expiry, require_side, time_remaining_label
from xpduel.game.duels.service import DuelService
from xpduel.game.duels.types import Duel, DuelHistoryEntry, DuelStats, DuelView, winner_of
from xpduel.store import keys
from xpduel.store.base import ReplicatedStore, Unsubscribe

logger = structlog.get_logger(__name__)

DuelListCallback = Callable[[list[DuelView]], Awaitable[None]]


def build_duel_view(duel: Duel, *, user_id: str, now_utc: datetime) -> DuelView:
    core = duel.core
    side = require_side(duel, user_id)
    winner_id = winner_of(duel)
    return DuelView(
        duel_id=core.duel_id,
        status=duel.status,
        role=side,
        opponent=core.participant(side.other),
        tasks=core.tasks,
        own_progress=core.progress_of(side),
        opponent_progress=core.progress_of(side.other),
        task_count=core.task_count,
        stake_xp=core.stake_xp,
        deadline=core.deadline,
        time_remaining_label=time_remaining_label(deadline=core.deadline, now_utc=now_utc),
        winner_id=winner_id,
        is_winner=(winner_id == user_id) if winner_id is not None else None,
    )


def build_duel_stats(entries: list[DuelHistoryEntry]) -> DuelStats:
    counts = {result: 0 for result in HistoryResult}
    for entry in entries:
        counts[entry.result] += 1
    return DuelStats(
        wins=counts[HistoryResult.WIN],
        losses=counts[HistoryResult.LOSS],
        forfeits=counts[HistoryResult.FORFEIT],
        draws=counts[HistoryResult.DRAW],
        expired=counts[HistoryResult.EXPIRED],
    )


async def list_duels_for_user(
    store: ReplicatedStore,
    *,
    user_id: str,
    now_utc: datetime,
) -> list[DuelView]:
    """Both namespaces combined, newest first.

    Copies are listed as stored, except that an open duel past its deadline is
    expired on the way out, the same as a single-duel read.
    """
    views: list[DuelView] = []
    for duel in await DuelRepo.list_for_user(store, user_id=user_id):
        if is_due_for_expiry(duel, now_utc=now_utc):
            try:
                duel = await DuelService.get_for_user(
                    store,
                    duel_id=duel.core.duel_id,
                    user_id=user_id,
                    now_utc=now_utc,
                )
            except DuelNotFoundError:
                continue
        views.append(build_duel_view(duel, user_id=user_id, now_utc=now_utc))
    return views


async def get_duel_for_user(
    store: ReplicatedStore,
    *,
    user_id: str,
    duel_id: str,
    now_utc: datetime,
) -> DuelView:
    duel = await DuelService.get_for_user(
        store,
        duel_id=duel_id,
        user_id=user_id,
        now_utc=now_utc,
    )
    return build_duel_view(duel, user_id=user_id, now_utc=now_utc)


async def list_history(store: ReplicatedStore, *, user_id: str) -> list[DuelHistoryEntry]:
    records = await store.scan(keys.duel_history_prefix(user_id))
    entries = [
        decode_history_entry(user_id, keys.child_id(key), record) for key, record in records.items()
    ]
    return sorted(entries, key=lambda entry: entry.completed_at, reverse=True)


async def duel_stats(store: ReplicatedStore, *, user_id: str) -> DuelStats:
    return build_duel_stats(await list_history(store, user_id=user_id))


def subscribe_duels(
    store: ReplicatedStore,
    *,
    user_id: str,
    callback: DuelListCallback,
    clock: Callable[[], datetime],
) -> Unsubscribe:
    """Delivers the combined duel list whenever either namespace changes."""

    async def _on_change(_: Any) -> None:
        views = await list_duels_for_user(store, user_id=user_id, now_utc=clock())
        await callback(views)

    unsubscribers = [
        store.subscribe(keys.duels_prefix(user_id, direction), _on_change)
        for direction in (OUTGOING, INCOMING)
    ]

    def _unsubscribe() -> None:
        for unsubscribe in unsubscribers:
            unsubscribe()

    logger.debug("duel_subscription_started", user_id=user_id)
    return _unsubscribe
