from xpduel.workers.tasks.duels import run_duel_sweep

__all__ = ["run_duel_sweep"]
