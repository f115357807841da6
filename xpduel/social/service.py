from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from xpduel.social.errors import (
    AlreadyFriendsError,
    DuplicateFriendRequestError,
    FriendRequestNotFoundError,
    SelfFriendRequestError,
)
from xpduel.social.profiles import ProfileService
from xpduel.social.types import FriendEdge, FriendRequest, FriendRequestStatus, UserIdentity
from xpduel.store import keys
from xpduel.store.base import ReplicatedStore

logger = structlog.get_logger(__name__)


def _edge_from_record(owner_id: str, friend_id: str, record: dict[str, Any]) -> FriendEdge:
    return FriendEdge(
        owner_id=owner_id,
        friend_id=friend_id,
        email=str(record.get("email") or ""),
        display_name=str(record.get("display_name") or ""),
        established_at=datetime.fromisoformat(record["established_at"]),
    )


def _request_from_record(to_id: str, from_id: str, record: dict[str, Any]) -> FriendRequest:
    return FriendRequest(
        from_id=from_id,
        to_id=to_id,
        from_email=str(record.get("from_email") or ""),
        from_display_name=str(record.get("from_display_name") or ""),
        status=FriendRequestStatus(record.get("status", FriendRequestStatus.PENDING.value)),
        sent_at=datetime.fromisoformat(record["sent_at"]),
    )


class FriendsService:
    """Friend requests and the symmetric friend graph.

    A friendship is two edges, one under each user. Both are always written or
    removed together; a single dangling edge is treated as corruption and is
    fixed by ``repair_friendship``.
    """

    @staticmethod
    async def send_friend_request(
        store: ReplicatedStore,
        *,
        from_user_id: str,
        to_user_id: str,
        now_utc: datetime,
    ) -> FriendRequest:
        if from_user_id == to_user_id:
            raise SelfFriendRequestError
        sender = await ProfileService.require_identity(store, user_id=from_user_id)
        await ProfileService.require_identity(store, user_id=to_user_id)

        own_edge = await store.read(keys.friend_key(from_user_id, to_user_id))
        their_edge = await store.read(keys.friend_key(to_user_id, from_user_id))
        if own_edge is not None or their_edge is not None:
            raise AlreadyFriendsError

        request_key = keys.friend_request_key(to_user_id, from_user_id)
        existing = await store.read(request_key)
        if existing is not None and existing.get("status") == FriendRequestStatus.PENDING.value:
            raise DuplicateFriendRequestError

        record = {
            "from_id": from_user_id,
            "to_id": to_user_id,
            "from_email": sender.email,
            "from_display_name": sender.display_name,
            "status": FriendRequestStatus.PENDING.value,
            "sent_at": now_utc.isoformat(),
        }
        await store.write(request_key, record)
        logger.info("friend_request_sent", from_user_id=from_user_id, to_user_id=to_user_id)
        return _request_from_record(to_user_id, from_user_id, record)

    @staticmethod
    async def accept_friend_request(
        store: ReplicatedStore,
        *,
        user_id: str,
        from_user_id: str,
        now_utc: datetime,
    ) -> FriendEdge:
        request_key = keys.friend_request_key(user_id, from_user_id)
        request = await store.read(request_key)
        if request is None:
            # Retry after the request was already consumed.
            if await FriendsService.are_friends(store, user_id=user_id, other_user_id=from_user_id):
                edge = await store.read(keys.friend_key(user_id, from_user_id))
                return _edge_from_record(user_id, from_user_id, edge or {})
            raise FriendRequestNotFoundError

        me = await ProfileService.require_identity(store, user_id=user_id)
        requester = await ProfileService.require_identity(store, user_id=from_user_id)
        await FriendsService._write_edges(store, first=me, second=requester, now_utc=now_utc)
        await store.delete(request_key)
        logger.info("friend_request_accepted", user_id=user_id, from_user_id=from_user_id)
        edge = await store.read(keys.friend_key(user_id, from_user_id))
        return _edge_from_record(user_id, from_user_id, edge or {})

    @staticmethod
    async def reject_friend_request(
        store: ReplicatedStore,
        *,
        user_id: str,
        from_user_id: str,
    ) -> None:
        request_key = keys.friend_request_key(user_id, from_user_id)
        if await store.read(request_key) is None:
            raise FriendRequestNotFoundError
        await store.delete(request_key)
        logger.info("friend_request_rejected", user_id=user_id, from_user_id=from_user_id)

    @staticmethod
    async def remove_friend(store: ReplicatedStore, *, user_id: str, friend_id: str) -> None:
        await store.delete(keys.friend_key(user_id, friend_id))
        await store.delete(keys.friend_key(friend_id, user_id))
        logger.info("friend_removed", user_id=user_id, friend_id=friend_id)

    @staticmethod
    async def are_friends(store: ReplicatedStore, *, user_id: str, other_user_id: str) -> bool:
        forward = await store.read(keys.friend_key(user_id, other_user_id))
        backward = await store.read(keys.friend_key(other_user_id, user_id))
        if (forward is None) != (backward is None):
            logger.warning(
                "friend_edge_asymmetric",
                user_id=user_id,
                other_user_id=other_user_id,
                forward_present=forward is not None,
            )
        return forward is not None and backward is not None

    @staticmethod
    async def repair_friendship(
        store: ReplicatedStore,
        *,
        user_id: str,
        other_user_id: str,
        now_utc: datetime,
    ) -> bool:
        """Resolves a one-sided edge; returns True when something was written.

        A pending request between the two users means an acceptance was cut
        short, so the missing edge is restored. Otherwise a removal was cut
        short and the dangling edge is deleted.
        """
        forward = await store.read(keys.friend_key(user_id, other_user_id))
        backward = await store.read(keys.friend_key(other_user_id, user_id))
        if (forward is None) == (backward is None):
            return False

        pending = await store.read(keys.friend_request_key(user_id, other_user_id))
        if pending is None:
            pending = await store.read(keys.friend_request_key(other_user_id, user_id))

        if pending is not None:
            first = await ProfileService.require_identity(store, user_id=user_id)
            second = await ProfileService.require_identity(store, user_id=other_user_id)
            await FriendsService._write_edges(store, first=first, second=second, now_utc=now_utc)
            await store.delete(keys.friend_request_key(user_id, other_user_id))
            await store.delete(keys.friend_request_key(other_user_id, user_id))
            logger.warning("friend_edge_restored", user_id=user_id, other_user_id=other_user_id)
        else:
            await store.delete(keys.friend_key(user_id, other_user_id))
            await store.delete(keys.friend_key(other_user_id, user_id))
            logger.warning("friend_edge_dropped", user_id=user_id, other_user_id=other_user_id)
        return True

    @staticmethod
    async def list_friends(store: ReplicatedStore, *, user_id: str) -> list[FriendEdge]:
        records = await store.scan(keys.friends_prefix(user_id))
        return [
            _edge_from_record(user_id, keys.child_id(key), record)
            for key, record in records.items()
        ]

    @staticmethod
    async def list_friend_requests(store: ReplicatedStore, *, user_id: str) -> list[FriendRequest]:
        records = await store.scan(keys.friend_requests_prefix(user_id))
        requests = [
            _request_from_record(user_id, keys.child_id(key), record)
            for key, record in records.items()
        ]
        return sorted(requests, key=lambda item: item.sent_at)

    @staticmethod
    async def _write_edges(
        store: ReplicatedStore,
        *,
        first: UserIdentity,
        second: UserIdentity,
        now_utc: datetime,
    ) -> None:
        established_at = now_utc.isoformat()
        for owner, friend in ((first, second), (second, first)):
            key = keys.friend_key(owner.user_id, friend.user_id)
            existing = await store.read(key)
            if existing is not None:
                continue
            await store.write(
                key,
                {
                    "email": friend.email,
                    "display_name": friend.display_name,
                    "established_at": established_at,
                },
            )
