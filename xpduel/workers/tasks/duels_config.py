from __future__ import annotations

from xpduel.core.config import get_settings

settings = get_settings()

SWEEP_BATCH_SIZE = max(1, int(settings.duel_sweep_batch_size))
SWEEP_INTERVAL_SECONDS = max(30, int(settings.duel_sweep_interval_seconds))
