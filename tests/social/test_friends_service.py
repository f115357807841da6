from __future__ import annotations

import pytest

from tests.xpduel_fixtures import NOW_UTC, make_friends, make_user
from xpduel.social import FriendsService, ProfileService
from xpduel.social.errors import (
    AlreadyFriendsError,
    DuplicateFriendRequestError,
    FriendRequestNotFoundError,
    SelfFriendRequestError,
    UserNotFoundError,
)
from xpduel.social.types import FriendRequestStatus
from xpduel.store import keys
from xpduel.store.memory import InMemoryStore


async def _store_with_users(*user_ids: str) -> InMemoryStore:
    store = InMemoryStore()
    for user_id in user_ids:
        await make_user(store, user_id)
    return store


@pytest.mark.asyncio
async def test_accepting_request_writes_both_edges_and_consumes_request() -> None:
    store = await _store_with_users("ann", "bob")

    request = await FriendsService.send_friend_request(
        store, from_user_id="ann", to_user_id="bob", now_utc=NOW_UTC
    )
    pending = await FriendsService.list_friend_requests(store, user_id="bob")
    edge = await FriendsService.accept_friend_request(
        store, user_id="bob", from_user_id="ann", now_utc=NOW_UTC
    )

    assert request.status is FriendRequestStatus.PENDING
    assert [item.from_id for item in pending] == ["ann"]
    assert edge.friend_id == "ann"
    assert edge.display_name == "Ann"
    assert await FriendsService.are_friends(store, user_id="ann", other_user_id="bob")
    assert await FriendsService.list_friend_requests(store, user_id="bob") == []
    assert [item.friend_id for item in await FriendsService.list_friends(store, user_id="ann")] == ["bob"]


@pytest.mark.asyncio
async def test_accept_retry_after_success_returns_existing_edge() -> None:
    store = await _store_with_users("ann", "bob")
    await make_friends(store, "ann", "bob")

    edge = await FriendsService.accept_friend_request(
        store, user_id="bob", from_user_id="ann", now_utc=NOW_UTC
    )

    assert edge.owner_id == "bob"
    assert edge.friend_id == "ann"


@pytest.mark.asyncio
async def test_request_preconditions() -> None:
    store = await _store_with_users("ann", "bob", "cy")
    await make_friends(store, "ann", "bob")
    await FriendsService.send_friend_request(store, from_user_id="ann", to_user_id="cy", now_utc=NOW_UTC)

    with pytest.raises(AlreadyFriendsError):
        await FriendsService.send_friend_request(store, from_user_id="bob", to_user_id="ann", now_utc=NOW_UTC)
    with pytest.raises(DuplicateFriendRequestError):
        await FriendsService.send_friend_request(store, from_user_id="ann", to_user_id="cy", now_utc=NOW_UTC)
    with pytest.raises(SelfFriendRequestError):
        await FriendsService.send_friend_request(store, from_user_id="ann", to_user_id="ann", now_utc=NOW_UTC)
    with pytest.raises(UserNotFoundError):
        await FriendsService.send_friend_request(store, from_user_id="ann", to_user_id="ghost", now_utc=NOW_UTC)


@pytest.mark.asyncio
async def test_reject_removes_request_without_edges() -> None:
    store = await _store_with_users("ann", "bob")
    await FriendsService.send_friend_request(store, from_user_id="ann", to_user_id="bob", now_utc=NOW_UTC)

    await FriendsService.reject_friend_request(store, user_id="bob", from_user_id="ann")

    assert await store.read(keys.friend_request_key("bob", "ann")) is None
    assert not await FriendsService.are_friends(store, user_id="ann", other_user_id="bob")
    with pytest.raises(FriendRequestNotFoundError):
        await FriendsService.reject_friend_request(store, user_id="bob", from_user_id="ann")


@pytest.mark.asyncio
async def test_remove_friend_drops_both_directions() -> None:
    store = await _store_with_users("ann", "bob")
    await make_friends(store, "ann", "bob")

    await FriendsService.remove_friend(store, user_id="bob", friend_id="ann")

    assert await store.read(keys.friend_key("ann", "bob")) is None
    assert await store.read(keys.friend_key("bob", "ann")) is None


@pytest.mark.asyncio
async def test_single_edge_is_not_a_friendship() -> None:
    store = await _store_with_users("ann", "bob")
    await store.write(
        keys.friend_key("ann", "bob"),
        {"email": "bob@example.com", "display_name": "Bob", "established_at": NOW_UTC.isoformat()},
    )

    assert await FriendsService.are_friends(store, user_id="ann", other_user_id="bob") is False


@pytest.mark.asyncio
async def test_repair_restores_edge_left_by_interrupted_acceptance() -> None:
    store = await _store_with_users("ann", "bob")
    await FriendsService.send_friend_request(store, from_user_id="ann", to_user_id="bob", now_utc=NOW_UTC)
    await store.write(
        keys.friend_key("bob", "ann"),
        {"email": "ann@example.com", "display_name": "Ann", "established_at": NOW_UTC.isoformat()},
    )

    changed = await FriendsService.repair_friendship(
        store, user_id="ann", other_user_id="bob", now_utc=NOW_UTC
    )

    assert changed is True
    assert await FriendsService.are_friends(store, user_id="ann", other_user_id="bob")
    assert await store.read(keys.friend_request_key("bob", "ann")) is None


@pytest.mark.asyncio
async def test_repair_drops_edge_left_by_interrupted_removal() -> None:
    store = await _store_with_users("ann", "bob")
    await make_friends(store, "ann", "bob")
    await store.delete(keys.friend_key("bob", "ann"))

    changed = await FriendsService.repair_friendship(
        store, user_id="ann", other_user_id="bob", now_utc=NOW_UTC
    )
    unchanged = await FriendsService.repair_friendship(
        store, user_id="ann", other_user_id="bob", now_utc=NOW_UTC
    )

    assert changed is True
    assert unchanged is False
    assert await store.read(keys.friend_key("ann", "bob")) is None


@pytest.mark.asyncio
async def test_find_by_email_is_case_insensitive_and_skips_self() -> None:
    store = await _store_with_users("ann", "bob")

    found = await ProfileService.find_by_email(store, email="  BOB@Example.com ")
    skipped = await ProfileService.find_by_email(store, email="bob@example.com", exclude_user_id="bob")

    assert found is not None
    assert found.user_id == "bob"
    assert skipped is None
