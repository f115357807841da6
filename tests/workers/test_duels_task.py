from __future__ import annotations

import pytest

from xpduel.store import keys
from xpduel.store.memory import InMemoryStore
from xpduel.workers.tasks import duels


def test_run_duel_sweep_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, batch_size: int) -> dict[str, int]:
        return {"batch_size": batch_size, "archived": 2}

    monkeypatch.setattr(duels, "run_duel_sweep_async", fake_async)

    result = duels.run_duel_sweep(batch_size=7)
    assert result == {"batch_size": 7, "archived": 2}


@pytest.mark.asyncio
async def test_run_duel_sweep_async_reports_counters(monkeypatch) -> None:
    store = InMemoryStore()
    await store.write(
        keys.duel_index_key("ghost"),
        {"duel_id": "ghost", "challenger_id": "ann", "challenged_id": "bob", "status": "pending"},
    )
    monkeypatch.setattr(duels, "SqlStore", lambda session_factory: store)

    result = await duels.run_duel_sweep_async(batch_size=0)

    assert result == {
        "batch_size": 1,
        "scanned": 1,
        "expired": 0,
        "settled": 0,
        "archived": 0,
        "repaired": 1,
        "failed": 0,
    }


def test_duel_sweep_is_on_the_beat_schedule() -> None:
    schedule = duels.celery_app.conf.beat_schedule["duel-sweep-every-minute"]

    assert schedule["task"] == "xpduel.workers.tasks.duels.run_duel_sweep"
    assert schedule["schedule"] >= 30.0
