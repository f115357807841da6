from __future__ import annotations

from collections.abc import Awaitable, Callable
from itertools import count
from typing import Any, Protocol

import structlog

from xpduel.store.keys import SEPARATOR

logger = structlog.get_logger(__name__)

Record = dict[str, Any]
ChangeCallback = Callable[[Any], Awaitable[None]]
Unsubscribe = Callable[[], None]


class ReplicatedStore(Protocol):
    """Key-addressed record store with per-key last-writer-wins semantics.

    There are no multi-key transactions: every method touches exactly one key,
    except ``scan`` which reads the direct children of a prefix.
    """

    async def read(self, key: str) -> Record | None: ...

    async def write(self, key: str, value: Record) -> None: ...

    async def patch(self, key: str, fields: Record) -> Record: ...

    async def delete(self, key: str) -> None: ...

    async def scan(self, prefix: str) -> dict[str, Record]: ...

    def subscribe(self, key: str, callback: ChangeCallback) -> Unsubscribe: ...


def is_direct_child(key: str, prefix: str) -> bool:
    if not key.startswith(prefix + SEPARATOR):
        return False
    return SEPARATOR not in key[len(prefix) + 1 :]


def merge_fields(current: Record | None, fields: Record) -> Record:
    merged = dict(current or {})
    merged.update(fields)
    return merged


class SubscriptionHub:
    """Fans key changes out to subscribers of that key or any of its ancestors."""

    def __init__(self) -> None:
        self._subscriptions: dict[int, tuple[str, ChangeCallback]] = {}
        self._ids = count(1)

    def subscribe(self, key: str, callback: ChangeCallback) -> Unsubscribe:
        subscription_id = next(self._ids)
        self._subscriptions[subscription_id] = (key, callback)

        def _unsubscribe() -> None:
            self._subscriptions.pop(subscription_id, None)

        return _unsubscribe

    def watchers_of(self, changed_key: str) -> list[tuple[str, ChangeCallback]]:
        return [
            (key, callback)
            for key, callback in list(self._subscriptions.values())
            if changed_key == key or changed_key.startswith(key + SEPARATOR)
        ]

    async def publish(self, store: ReplicatedStore, changed_key: str) -> None:
        for key, callback in self.watchers_of(changed_key):
            value = await store.read(key)
            if value is None:
                value = await store.scan(key)
            try:
                await callback(value)
            except Exception:
                logger.exception("store_subscriber_failed", key=key, changed_key=changed_key)
