from __future__ import annotations

from datetime import datetime, timezone

from xpduel.economy.progression import ProgressionService
from xpduel.social import FriendsService, ProfileService
from xpduel.store.memory import InMemoryStore

UTC = timezone.utc
NOW_UTC = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


async def make_user(
    store: InMemoryStore,
    user_id: str,
    *,
    total_xp: int = 0,
    display_name: str | None = None,
    now_utc: datetime = NOW_UTC,
) -> None:
    await ProfileService.ensure_profile(
        store,
        user_id=user_id,
        email=f"{user_id}@example.com",
        display_name=display_name or user_id.capitalize(),
        now_utc=now_utc,
    )
    if total_xp:
        await ProgressionService.award(store, user_id=user_id, xp=total_xp, now_utc=now_utc)


async def make_friends(
    store: InMemoryStore,
    first_id: str,
    second_id: str,
    *,
    now_utc: datetime = NOW_UTC,
) -> None:
    await FriendsService.send_friend_request(
        store,
        from_user_id=first_id,
        to_user_id=second_id,
        now_utc=now_utc,
    )
    await FriendsService.accept_friend_request(
        store,
        user_id=second_id,
        from_user_id=first_id,
        now_utc=now_utc,
    )


async def total_xp(store: InMemoryStore, user_id: str) -> int:
    snapshot = await ProgressionService.get_snapshot(store, user_id=user_id)
    return snapshot.total_xp
