from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime
from typing import Any

import structlog

from xpduel.economy.progression.rules import (
    apply_award,
    apply_deduct,
    apply_refund,
    apply_streak,
    xp_for_completion,
)
from xpduel.economy.progression.time import progression_local_date
from xpduel.economy.progression.types import LedgerResult, ProgressionSnapshot
from xpduel.store import keys
from xpduel.store.base import ReplicatedStore
from xpduel.tasks.types import TaskPriority

logger = structlog.get_logger(__name__)


class ProgressionService:
    """Owns every write to ``progression/{uid}``.

    Ledger calls that carry an ``entry_key`` are applied at most once per user:
    the key is stored inside the same record as the balance it changed.
    """

    @staticmethod
    def _snapshot_from_record(record: dict[str, Any] | None) -> ProgressionSnapshot:
        if record is None:
            return ProgressionSnapshot()
        last_completion = record.get("last_completion_date")
        updated_at = record.get("updated_at")
        return ProgressionSnapshot(
            current_level_xp=max(0, int(record.get("current_level_xp", 0))),
            level=max(1, int(record.get("level", 1))),
            total_xp=max(0, int(record.get("total_xp", 0))),
            streak_count=max(0, int(record.get("streak_count", 0))),
            last_completion_date=date.fromisoformat(last_completion) if last_completion else None,
            applied_entries=dict(record.get("applied_entries") or {}),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )

    @staticmethod
    def _record_from_snapshot(snapshot: ProgressionSnapshot) -> dict[str, Any]:
        return {
            "current_level_xp": snapshot.current_level_xp,
            "level": snapshot.level,
            "total_xp": snapshot.total_xp,
            "streak_count": snapshot.streak_count,
            "last_completion_date": (
                snapshot.last_completion_date.isoformat() if snapshot.last_completion_date else None
            ),
            "applied_entries": dict(snapshot.applied_entries),
            "updated_at": snapshot.updated_at.isoformat() if snapshot.updated_at else None,
        }

    @staticmethod
    async def get_snapshot(store: ReplicatedStore, *, user_id: str) -> ProgressionSnapshot:
        record = await store.read(keys.progression_key(user_id))
        return ProgressionService._snapshot_from_record(record)

    @staticmethod
    async def ensure_snapshot(
        store: ReplicatedStore,
        *,
        user_id: str,
        now_utc: datetime,
    ) -> ProgressionSnapshot:
        key = keys.progression_key(user_id)
        record = await store.read(key)
        if record is not None:
            return ProgressionService._snapshot_from_record(record)
        snapshot = ProgressionSnapshot(updated_at=now_utc)
        await store.write(key, ProgressionService._record_from_snapshot(snapshot))
        logger.info("progression_initialized", user_id=user_id)
        return snapshot

    @staticmethod
    async def _apply(
        store: ReplicatedStore,
        *,
        user_id: str,
        operation: str,
        xp: int,
        now_utc: datetime,
        entry_key: str | None,
        mutate: Callable[[ProgressionSnapshot, int], ProgressionSnapshot],
    ) -> LedgerResult:
        before = await ProgressionService.get_snapshot(store, user_id=user_id)
        if entry_key is not None and entry_key in before.applied_entries:
            logger.info(
                "progression_entry_already_applied",
                user_id=user_id,
                operation=operation,
                entry_key=entry_key,
            )
            return LedgerResult(snapshot=before, applied=False)

        after = mutate(before, xp)
        applied_entries = dict(before.applied_entries)
        if entry_key is not None:
            applied_entries[entry_key] = now_utc.isoformat()
        after = replace(after, applied_entries=applied_entries, updated_at=now_utc)
        await store.write(
            keys.progression_key(user_id),
            ProgressionService._record_from_snapshot(after),
        )
        levels_gained = after.level - before.level
        logger.info(
            "progression_entry_applied",
            user_id=user_id,
            operation=operation,
            xp=xp,
            entry_key=entry_key,
            total_xp=after.total_xp,
            level=after.level,
            levels_gained=levels_gained,
        )
        return LedgerResult(snapshot=after, applied=True, levels_gained=levels_gained)

    @staticmethod
    async def award(
        store: ReplicatedStore,
        *,
        user_id: str,
        xp: int,
        now_utc: datetime,
        entry_key: str | None = None,
    ) -> LedgerResult:
        return await ProgressionService._apply(
            store,
            user_id=user_id,
            operation="award",
            xp=xp,
            now_utc=now_utc,
            entry_key=entry_key,
            mutate=apply_award,
        )

    @staticmethod
    async def deduct(
        store: ReplicatedStore,
        *,
        user_id: str,
        xp: int,
        now_utc: datetime,
        entry_key: str | None = None,
    ) -> LedgerResult:
        return await ProgressionService._apply(
            store,
            user_id=user_id,
            operation="deduct",
            xp=xp,
            now_utc=now_utc,
            entry_key=entry_key,
            mutate=apply_deduct,
        )

    @staticmethod
    async def refund(
        store: ReplicatedStore,
        *,
        user_id: str,
        xp: int,
        now_utc: datetime,
        entry_key: str | None = None,
    ) -> LedgerResult:
        return await ProgressionService._apply(
            store,
            user_id=user_id,
            operation="refund",
            xp=xp,
            now_utc=now_utc,
            entry_key=entry_key,
            mutate=apply_refund,
        )

    @staticmethod
    async def mark_entry(
        store: ReplicatedStore,
        *,
        user_id: str,
        entry_key: str,
        now_utc: datetime,
    ) -> LedgerResult:
        """Records ``entry_key`` without moving any XP."""
        return await ProgressionService._apply(
            store,
            user_id=user_id,
            operation="mark",
            xp=0,
            now_utc=now_utc,
            entry_key=entry_key,
            mutate=lambda snapshot, _: snapshot,
        )

    @staticmethod
    async def has_entry(store: ReplicatedStore, *, user_id: str, entry_key: str) -> bool:
        snapshot = await ProgressionService.get_snapshot(store, user_id=user_id)
        return entry_key in snapshot.applied_entries

    @staticmethod
    async def forget_entries(
        store: ReplicatedStore,
        *,
        user_id: str,
        entry_key_prefix: str,
    ) -> int:
        """Drops applied entry keys once the record they guard no longer exists."""
        record = await store.read(keys.progression_key(user_id))
        if record is None:
            return 0
        snapshot = ProgressionService._snapshot_from_record(record)
        kept = {
            entry_key: applied_at
            for entry_key, applied_at in snapshot.applied_entries.items()
            if not entry_key.startswith(entry_key_prefix)
        }
        forgotten = len(snapshot.applied_entries) - len(kept)
        if not forgotten:
            return 0
        await store.write(
            keys.progression_key(user_id),
            ProgressionService._record_from_snapshot(replace(snapshot, applied_entries=kept)),
        )
        logger.info(
            "progression_entries_forgotten",
            user_id=user_id,
            entry_key_prefix=entry_key_prefix,
            forgotten=forgotten,
        )
        return forgotten

    @staticmethod
    async def update_streak(
        store: ReplicatedStore,
        *,
        user_id: str,
        now_utc: datetime,
    ) -> ProgressionSnapshot:
        before = await ProgressionService.get_snapshot(store, user_id=user_id)
        after = replace(
            apply_streak(before, today=progression_local_date(now_utc)),
            updated_at=now_utc,
        )
        await store.write(
            keys.progression_key(user_id),
            ProgressionService._record_from_snapshot(after),
        )
        return after

    @staticmethod
    def _streak_pending(
        snapshot: ProgressionSnapshot,
        entry_key: str | None,
        *,
        now_utc: datetime,
    ) -> bool:
        applied_at = snapshot.applied_entries.get(entry_key) if entry_key is not None else None
        if applied_at is None:
            return False
        today = progression_local_date(now_utc)
        applied_on = progression_local_date(datetime.fromisoformat(applied_at))
        return applied_on == today and snapshot.last_completion_date != today

    @staticmethod
    async def record_completion(
        store: ReplicatedStore,
        *,
        user_id: str,
        priority: TaskPriority,
        has_steps: bool,
        now_utc: datetime,
        entry_key: str | None = None,
    ) -> LedgerResult:
        xp = xp_for_completion(priority, has_steps=has_steps)
        result = await ProgressionService.award(
            store,
            user_id=user_id,
            xp=xp,
            now_utc=now_utc,
            entry_key=entry_key,
        )
        if not result.applied:
            if not ProgressionService._streak_pending(result.snapshot, entry_key, now_utc=now_utc):
                return result
            # The award landed earlier today but the streak write did not.
            snapshot = await ProgressionService.update_streak(store, user_id=user_id, now_utc=now_utc)
            return LedgerResult(snapshot=snapshot, applied=False)
        snapshot = await ProgressionService.update_streak(store, user_id=user_id, now_utc=now_utc)
        return LedgerResult(snapshot=snapshot, applied=True, levels_gained=result.levels_gained)
