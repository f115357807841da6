from __future__ import annotations

from xpduel.workers.tasks.duels_config import SWEEP_INTERVAL_SECONDS


def configure_duels_schedule(celery_app) -> None:
    celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
    celery_app.conf.beat_schedule.update(
        {
            "duel-sweep-every-minute": {
                "task": "xpduel.workers.tasks.duels.run_duel_sweep",
                "schedule": float(SWEEP_INTERVAL_SECONDS),
                "options": {"queue": "q_normal"},
            }
        }
    )
