from __future__ import annotations

from datetime import timedelta

import pytest

from tests.xpduel_fixtures import NOW_UTC
from xpduel.economy.progression import ProgressionService
from xpduel.economy.progression.errors import InsufficientFundsError
from xpduel.store import keys
from xpduel.store.memory import InMemoryStore
from xpduel.tasks.types import TaskPriority


@pytest.mark.asyncio
async def test_ensure_snapshot_creates_zeroed_record_once() -> None:
    store = InMemoryStore()

    first = await ProgressionService.ensure_snapshot(store, user_id="u1", now_utc=NOW_UTC)
    await ProgressionService.award(store, user_id="u1", xp=7, now_utc=NOW_UTC)
    second = await ProgressionService.ensure_snapshot(store, user_id="u1", now_utc=NOW_UTC)

    assert (first.level, first.total_xp, first.streak_count) == (1, 0, 0)
    assert second.total_xp == 7


@pytest.mark.asyncio
async def test_award_with_entry_key_applies_once() -> None:
    store = InMemoryStore()

    first = await ProgressionService.award(
        store, user_id="u1", xp=20, now_utc=NOW_UTC, entry_key="duel:d1:payout"
    )
    second = await ProgressionService.award(
        store, user_id="u1", xp=20, now_utc=NOW_UTC, entry_key="duel:d1:payout"
    )

    assert first.applied is True
    assert first.levels_gained == 1
    assert second.applied is False
    assert second.snapshot.total_xp == 20
    assert await ProgressionService.has_entry(store, user_id="u1", entry_key="duel:d1:payout")


@pytest.mark.asyncio
async def test_failed_deduct_writes_nothing() -> None:
    store = InMemoryStore()
    await ProgressionService.award(store, user_id="u1", xp=5, now_utc=NOW_UTC)
    before = await store.read(keys.progression_key("u1"))

    with pytest.raises(InsufficientFundsError):
        await ProgressionService.deduct(
            store, user_id="u1", xp=10, now_utc=NOW_UTC, entry_key="duel:d1:stake:u1"
        )

    assert await store.read(keys.progression_key("u1")) == before


@pytest.mark.asyncio
async def test_record_completion_updates_streak_once_per_entry() -> None:
    store = InMemoryStore()

    await ProgressionService.record_completion(
        store,
        user_id="u1",
        priority=TaskPriority.HIGH,
        has_steps=True,
        now_utc=NOW_UTC - timedelta(days=1),
        entry_key="task:t1:complete",
    )
    result = await ProgressionService.record_completion(
        store,
        user_id="u1",
        priority=TaskPriority.LOW,
        has_steps=False,
        now_utc=NOW_UTC,
        entry_key="task:t2:complete",
    )
    replay = await ProgressionService.record_completion(
        store,
        user_id="u1",
        priority=TaskPriority.LOW,
        has_steps=False,
        now_utc=NOW_UTC,
        entry_key="task:t2:complete",
    )

    assert result.snapshot.total_xp == 30
    assert result.snapshot.streak_count == 2
    assert replay.applied is False
    assert replay.snapshot.total_xp == 30
    assert replay.snapshot.streak_count == 2


@pytest.mark.asyncio
async def test_retried_completion_finishes_streak_left_behind_by_a_crash() -> None:
    store = InMemoryStore()
    # The award was written but the process stopped before the streak update.
    await ProgressionService.award(
        store, user_id="u1", xp=20, now_utc=NOW_UTC, entry_key="task:t1:complete"
    )

    retry = await ProgressionService.record_completion(
        store,
        user_id="u1",
        priority=TaskPriority.HIGH,
        has_steps=False,
        now_utc=NOW_UTC + timedelta(hours=1),
        entry_key="task:t1:complete",
    )

    assert retry.applied is False
    assert retry.snapshot.total_xp == 20
    assert retry.snapshot.streak_count == 1
    assert retry.snapshot.last_completion_date == NOW_UTC.date()


@pytest.mark.asyncio
async def test_completion_replayed_on_a_later_day_leaves_streak_alone() -> None:
    store = InMemoryStore()
    await ProgressionService.award(
        store, user_id="u1", xp=20, now_utc=NOW_UTC - timedelta(days=1), entry_key="task:t1:complete"
    )

    replay = await ProgressionService.record_completion(
        store,
        user_id="u1",
        priority=TaskPriority.HIGH,
        has_steps=False,
        now_utc=NOW_UTC,
        entry_key="task:t1:complete",
    )

    assert replay.applied is False
    assert replay.snapshot.streak_count == 0
    assert replay.snapshot.last_completion_date is None


@pytest.mark.asyncio
async def test_forget_entries_drops_only_matching_keys() -> None:
    store = InMemoryStore()
    for entry_key in ("duel:d1:stake:u1", "duel:d1:refund:u1", "duel:d10:stake:u1", "task:t1:complete"):
        await ProgressionService.award(store, user_id="u1", xp=1, now_utc=NOW_UTC, entry_key=entry_key)

    forgotten = await ProgressionService.forget_entries(store, user_id="u1", entry_key_prefix="duel:d1:")
    again = await ProgressionService.forget_entries(store, user_id="u1", entry_key_prefix="duel:d1:")
    snapshot = await ProgressionService.get_snapshot(store, user_id="u1")

    assert (forgotten, again) == (2, 0)
    assert set(snapshot.applied_entries) == {"duel:d10:stake:u1", "task:t1:complete"}
    assert snapshot.total_xp == 4


@pytest.mark.asyncio
async def test_mark_entry_records_key_without_xp() -> None:
    store = InMemoryStore()
    await ProgressionService.award(store, user_id="u1", xp=12, now_utc=NOW_UTC)

    marked = await ProgressionService.mark_entry(
        store, user_id="u1", entry_key="duel:d1:payout", now_utc=NOW_UTC
    )

    assert marked.applied is True
    assert marked.snapshot.total_xp == 12
    assert await ProgressionService.has_entry(store, user_id="u1", entry_key="duel:d1:payout")
