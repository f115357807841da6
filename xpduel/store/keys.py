from __future__ import annotations

from typing import Literal

DuelDirection = Literal["incoming", "outgoing"]

USERS = "users"
PROGRESSION = "progression"
FRIENDS = "friends"
FRIEND_REQUESTS = "friendRequests"
DUELS = "duels"
DUEL_INDEX = "duelIndex"
DUEL_HISTORY = "duelHistory"
TASKS = "tasks"

SEPARATOR = "/"


def join(*parts: str) -> str:
    for part in parts:
        if not part or SEPARATOR in part:
            raise ValueError(f"invalid key segment: {part!r}")
    return SEPARATOR.join(parts)


def child_id(key: str) -> str:
    return key.rsplit(SEPARATOR, 1)[-1]


def user_key(user_id: str) -> str:
    return join(USERS, user_id)


def progression_key(user_id: str) -> str:
    return join(PROGRESSION, user_id)


def friends_prefix(user_id: str) -> str:
    return join(FRIENDS, user_id)


def friend_key(user_id: str, friend_id: str) -> str:
    return join(FRIENDS, user_id, friend_id)


def friend_requests_prefix(user_id: str) -> str:
    return join(FRIEND_REQUESTS, user_id)


def friend_request_key(to_user_id: str, from_user_id: str) -> str:
    return join(FRIEND_REQUESTS, to_user_id, from_user_id)


def duels_prefix(user_id: str, direction: DuelDirection) -> str:
    return join(DUELS, user_id, direction)


def duel_copy_key(user_id: str, direction: DuelDirection, duel_id: str) -> str:
    return join(DUELS, user_id, direction, duel_id)


def duel_index_key(duel_id: str) -> str:
    return join(DUEL_INDEX, duel_id)


def duel_history_prefix(user_id: str) -> str:
    return join(DUEL_HISTORY, user_id)


def duel_history_key(user_id: str, duel_id: str) -> str:
    return join(DUEL_HISTORY, user_id, duel_id)


def tasks_prefix(user_id: str) -> str:
    return join(TASKS, user_id)


def task_key(user_id: str, task_id: str) -> str:
    return join(TASKS, user_id, task_id)
