from xpduel.game.duels.queries import (
    duel_stats,
    get_duel_for_user,
    list_duels_for_user,
    list_history,
    subscribe_duels,
)
from xpduel.game.duels.service import DuelService

__all__ = [
    "DuelService",
    "duel_stats",
    "get_duel_for_user",
    "list_duels_for_user",
    "list_history",
    "subscribe_duels",
]
