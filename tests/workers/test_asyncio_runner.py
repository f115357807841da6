from __future__ import annotations

import structlog

from xpduel.workers import asyncio_runner


def test_run_async_job_binds_job_name_and_resets_pool(monkeypatch) -> None:
    disposed: list[str | None] = []

    async def fake_dispose_engine() -> None:
        disposed.append(structlog.contextvars.get_contextvars().get("job"))

    async def job() -> str | None:
        return structlog.contextvars.get_contextvars().get("job")

    monkeypatch.setattr(asyncio_runner, "dispose_engine", fake_dispose_engine)

    result = asyncio_runner.run_async_job(job(), job_name="duel_sweep")

    assert result == "duel_sweep"
    assert disposed == ["duel_sweep", "duel_sweep"]
    assert "job" not in structlog.contextvars.get_contextvars()
