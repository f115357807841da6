from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

import structlog

from xpduel.db.session import SessionLocal
from xpduel.game.duels import DuelService
from xpduel.store.sql import SqlStore
from xpduel.workers.asyncio_runner import run_async_job
from xpduel.workers.celery_app import celery_app
from xpduel.workers.tasks.duels_config import SWEEP_BATCH_SIZE
from xpduel.workers.tasks.duels_schedule import configure_duels_schedule

logger = structlog.get_logger(__name__)

configure_duels_schedule(celery_app)


async def run_duel_sweep_async(*, batch_size: int = SWEEP_BATCH_SIZE) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    resolved_batch_size = max(1, int(batch_size))

    result = await DuelService.sweep(
        SqlStore(SessionLocal),
        now_utc=now_utc,
        batch_size=resolved_batch_size,
    )

    counters = {"batch_size": resolved_batch_size, **asdict(result)}
    logger.info("duel_sweep_finished", **counters)
    return counters


@celery_app.task(name="xpduel.workers.tasks.duels.run_duel_sweep")
def run_duel_sweep(batch_size: int = SWEEP_BATCH_SIZE) -> dict[str, int]:
    return run_async_job(run_duel_sweep_async(batch_size=batch_size), job_name="duel_sweep")
