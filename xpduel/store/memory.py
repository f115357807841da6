from __future__ import annotations

import copy

from xpduel.store.base import (
    ChangeCallback,
    Record,
    SubscriptionHub,
    Unsubscribe,
    is_direct_child,
    merge_fields,
)


class InMemoryStore:
    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self._hub = SubscriptionHub()

    async def read(self, key: str) -> Record | None:
        value = self._records.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def write(self, key: str, value: Record) -> None:
        self._records[key] = copy.deepcopy(value)
        await self._hub.publish(self, key)

    async def patch(self, key: str, fields: Record) -> Record:
        merged = merge_fields(self._records.get(key), copy.deepcopy(fields))
        self._records[key] = merged
        await self._hub.publish(self, key)
        return copy.deepcopy(merged)

    async def delete(self, key: str) -> None:
        if self._records.pop(key, None) is None:
            return
        await self._hub.publish(self, key)

    async def scan(self, prefix: str) -> dict[str, Record]:
        return {
            key: copy.deepcopy(value)
            for key, value in sorted(self._records.items())
            if is_direct_child(key, prefix)
        }

    def subscribe(self, key: str, callback: ChangeCallback) -> Unsubscribe:
        return self._hub.subscribe(key, callback)

    def keys(self) -> list[str]:
        return sorted(self._records)
