from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from xpduel.game.duels.codec import decode_duel, encode_duel
from xpduel.game.duels.constants import DuelStatus, is_terminal_status
from xpduel.game.duels.errors import DuelAccessError, DuelNotFoundError
from xpduel.game.duels.rules import merge_copies
from xpduel.game.duels.types import Duel, TerminalDuel
from xpduel.store import keys
from xpduel.store.base import ReplicatedStore

logger = structlog.get_logger(__name__)

OUTGOING: keys.DuelDirection = "outgoing"
INCOMING: keys.DuelDirection = "incoming"

SETTLEMENT_FIELD = "settlement"


@dataclass(frozen=True, slots=True)
class LoadedDuel:
    duel: Duel
    settlement: TerminalDuel | None = None
    repaired: bool = False


def _index_record(duel: Duel) -> dict[str, Any]:
    core = duel.core
    archive_after = getattr(duel, "archive_after", None)
    return {
        "duel_id": core.duel_id,
        "challenger_id": core.challenger.user_id,
        "challenged_id": core.challenged.user_id,
        "status": duel.status.value,
        "deadline": core.deadline.isoformat(),
        "updated_at": core.updated_at.isoformat(),
        "archive_after": archive_after.isoformat() if archive_after is not None else None,
    }


class DuelRepo:
    """The only code path that touches the physical copies of a duel.

    Every duel lives in three places: the challenger's outgoing copy, the
    challenged user's incoming copy and ``duelIndex/{duelId}``. The index is
    written first and removed last, so any surviving copy can always be found
    through it.
    """

    @staticmethod
    def copy_keys(*, challenger_id: str, challenged_id: str, duel_id: str) -> tuple[str, str]:
        return (
            keys.duel_copy_key(challenger_id, OUTGOING, duel_id),
            keys.duel_copy_key(challenged_id, INCOMING, duel_id),
        )

    @staticmethod
    async def save(store: ReplicatedStore, duel: Duel) -> Duel:
        core = duel.core
        await store.patch(keys.duel_index_key(core.duel_id), _index_record(duel))
        record = encode_duel(duel)
        outgoing_key, incoming_key = DuelRepo.copy_keys(
            challenger_id=core.challenger.user_id,
            challenged_id=core.challenged.user_id,
            duel_id=core.duel_id,
        )
        await store.write(outgoing_key, record)
        await store.write(incoming_key, record)
        return duel

    @staticmethod
    async def delete(store: ReplicatedStore, duel: Duel) -> None:
        core = duel.core
        outgoing_key, incoming_key = DuelRepo.copy_keys(
            challenger_id=core.challenger.user_id,
            challenged_id=core.challenged.user_id,
            duel_id=core.duel_id,
        )
        await store.delete(outgoing_key)
        await store.delete(incoming_key)
        await store.delete(keys.duel_index_key(core.duel_id))

    @staticmethod
    async def locate(
        store: ReplicatedStore,
        *,
        duel_id: str,
        user_id: str | None = None,
    ) -> tuple[str, str]:
        """Resolves ``(challenger_id, challenged_id)`` for a duel id."""
        index = await store.read(keys.duel_index_key(duel_id))
        if index is not None:
            participants = (str(index["challenger_id"]), str(index["challenged_id"]))
            if user_id is not None and user_id not in participants:
                raise DuelAccessError
            return participants

        if user_id is not None:
            for direction in (OUTGOING, INCOMING):
                record = await store.read(keys.duel_copy_key(user_id, direction, duel_id))
                if record is not None:
                    return str(record["challenger_id"]), str(record["challenged_id"])
        raise DuelNotFoundError

    @staticmethod
    async def load(
        store: ReplicatedStore,
        *,
        duel_id: str,
        user_id: str | None = None,
    ) -> LoadedDuel:
        """Reads both copies, merges them and rewrites whatever disagrees."""
        challenger_id, challenged_id = await DuelRepo.locate(
            store,
            duel_id=duel_id,
            user_id=user_id,
        )
        index_key = keys.duel_index_key(duel_id)
        outgoing_key, incoming_key = DuelRepo.copy_keys(
            challenger_id=challenger_id,
            challenged_id=challenged_id,
            duel_id=duel_id,
        )
        index = await store.read(index_key)
        outgoing = await store.read(outgoing_key)
        incoming = await store.read(incoming_key)

        if outgoing is None and incoming is None:
            if index is not None:
                await store.delete(index_key)
                logger.warning("duel_index_orphan_removed", duel_id=duel_id)
            raise DuelNotFoundError

        decoded = [decode_duel(record) for record in (outgoing, incoming) if record is not None]
        duel = decoded[0] if len(decoded) == 1 else merge_copies(decoded[0], decoded[1])

        expected = encode_duel(duel)
        stale = [
            key
            for key, record in ((outgoing_key, outgoing), (incoming_key, incoming))
            if record != expected
        ]
        if index is None or index.get("status") != duel.status.value:
            stale.append(index_key)

        repaired = False
        if stale:
            await DuelRepo.save(store, duel)
            repaired = True
            logger.warning("duel_copies_repaired", duel_id=duel_id, stale_keys=stale)

        settlement = None
        if index is not None and index.get(SETTLEMENT_FIELD):
            settlement = decode_duel(index[SETTLEMENT_FIELD])
        return LoadedDuel(duel=duel, settlement=settlement, repaired=repaired)

    @staticmethod
    async def get_settlement(store: ReplicatedStore, *, duel_id: str) -> TerminalDuel | None:
        index = await store.read(keys.duel_index_key(duel_id))
        if index is None or not index.get(SETTLEMENT_FIELD):
            return None
        return decode_duel(index[SETTLEMENT_FIELD])

    @staticmethod
    async def claim_settlement(store: ReplicatedStore, terminal: TerminalDuel) -> dict[str, Any]:
        return await store.patch(
            keys.duel_index_key(terminal.core.duel_id),
            {SETTLEMENT_FIELD: encode_duel(terminal)},
        )

    @staticmethod
    async def list_for_user(store: ReplicatedStore, *, user_id: str) -> list[Duel]:
        duels: dict[str, Duel] = {}
        for direction in (OUTGOING, INCOMING):
            records = await store.scan(keys.duels_prefix(user_id, direction))
            for record in records.values():
                duel = decode_duel(record)
                duels[duel.core.duel_id] = duel
        return sorted(duels.values(), key=lambda item: item.core.sent_at, reverse=True)

    @staticmethod
    async def list_due_for_sweep(
        store: ReplicatedStore,
        *,
        now_utc: datetime,
        limit: int,
    ) -> list[str]:
        """Index entries past their deadline, past archival, or holding an unfinished claim."""
        records = await store.scan(keys.DUEL_INDEX)
        due: list[tuple[str, str]] = []
        for key, record in records.items():
            status = DuelStatus(record.get("status", DuelStatus.PENDING.value))
            if is_terminal_status(status):
                archive_after = record.get("archive_after")
                is_due = archive_after is None or datetime.fromisoformat(archive_after) <= now_utc
            else:
                deadline = record.get("deadline")
                is_due = (
                    bool(record.get(SETTLEMENT_FIELD))
                    or deadline is None
                    or datetime.fromisoformat(deadline) < now_utc
                )
            if is_due:
                due.append((str(record.get("updated_at") or ""), keys.child_id(key)))
        due.sort()
        return [duel_id for _, duel_id in due[:limit]]
