from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xpduel.db.models.store_records import StoreRecord
from xpduel.store.base import (
    ChangeCallback,
    Record,
    SubscriptionHub,
    Unsubscribe,
    is_direct_child,
    merge_fields,
)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlStore:
    """Store backed by the ``store_records`` table, one short transaction per call.

    Change notifications are delivered to subscribers of this process only.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._hub = SubscriptionHub()

    async def read(self, key: str) -> Record | None:
        async with self._session_factory() as session:
            row = await session.get(StoreRecord, key)
            return dict(row.value) if row is not None else None

    async def write(self, key: str, value: Record) -> None:
        async with self._session_factory.begin() as session:
            await self._upsert(session, key=key, value=dict(value))
        await self._hub.publish(self, key)

    async def patch(self, key: str, fields: Record) -> Record:
        async with self._session_factory.begin() as session:
            stmt = select(StoreRecord.value).where(StoreRecord.key == key).with_for_update()
            current = (await session.execute(stmt)).scalar_one_or_none()
            merged = merge_fields(current, fields)
            await self._upsert(session, key=key, value=merged)
        await self._hub.publish(self, key)
        return merged

    async def delete(self, key: str) -> None:
        async with self._session_factory.begin() as session:
            result = await session.execute(delete(StoreRecord).where(StoreRecord.key == key))
        if result.rowcount:
            await self._hub.publish(self, key)

    async def scan(self, prefix: str) -> dict[str, Record]:
        pattern = f"{_escape_like(prefix)}/%"
        stmt = (
            select(StoreRecord.key, StoreRecord.value)
            .where(StoreRecord.key.like(pattern, escape="\\"))
            .order_by(StoreRecord.key)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return {key: dict(value) for key, value in rows if is_direct_child(key, prefix)}

    def subscribe(self, key: str, callback: ChangeCallback) -> Unsubscribe:
        return self._hub.subscribe(key, callback)

    @staticmethod
    async def _upsert(session: AsyncSession, *, key: str, value: Record) -> None:
        now_utc = datetime.now(timezone.utc)
        stmt = insert(StoreRecord).values(key=key, value=value, updated_at=now_utc)
        stmt = stmt.on_conflict_do_update(
            index_elements=[StoreRecord.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        await session.execute(stmt)
