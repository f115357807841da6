from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from xpduel.economy.progression import ProgressionService
from xpduel.social.errors import UserNotFoundError
from xpduel.social.types import UNKNOWN_DISPLAY_NAME, UserIdentity
from xpduel.store import keys
from xpduel.store.base import ReplicatedStore

logger = structlog.get_logger(__name__)


def _identity_from_record(user_id: str, record: dict[str, Any]) -> UserIdentity:
    return UserIdentity(
        user_id=user_id,
        email=str(record.get("email") or ""),
        display_name=str(record.get("display_name") or UNKNOWN_DISPLAY_NAME),
    )


class ProfileService:
    @staticmethod
    async def ensure_profile(
        store: ReplicatedStore,
        *,
        user_id: str,
        email: str,
        display_name: str | None,
        now_utc: datetime,
    ) -> UserIdentity:
        key = keys.user_key(user_id)
        record = await store.read(key)
        if record is None:
            record = {
                "email": email.strip(),
                "display_name": (display_name or "").strip() or UNKNOWN_DISPLAY_NAME,
                "created_at": now_utc.isoformat(),
            }
            await store.write(key, record)
            logger.info("profile_created", user_id=user_id)
        await ProgressionService.ensure_snapshot(store, user_id=user_id, now_utc=now_utc)
        return _identity_from_record(user_id, record)

    @staticmethod
    async def get_identity(store: ReplicatedStore, *, user_id: str) -> UserIdentity | None:
        record = await store.read(keys.user_key(user_id))
        if record is None:
            return None
        return _identity_from_record(user_id, record)

    @staticmethod
    async def require_identity(store: ReplicatedStore, *, user_id: str) -> UserIdentity:
        identity = await ProfileService.get_identity(store, user_id=user_id)
        if identity is None:
            raise UserNotFoundError
        return identity

    @staticmethod
    async def find_by_email(
        store: ReplicatedStore,
        *,
        email: str,
        exclude_user_id: str | None = None,
    ) -> UserIdentity | None:
        needle = email.strip().lower()
        if not needle:
            return None
        records = await store.scan(keys.USERS)
        for key, record in records.items():
            user_id = keys.child_id(key)
            if user_id == exclude_user_id:
                continue
            if str(record.get("email") or "").lower() == needle:
                return _identity_from_record(user_id, record)
        return None
