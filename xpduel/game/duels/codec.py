from __future__ import annotations

from datetime import datetime
from typing import Any

from xpduel.game.duels.constants import DuelStatus, HistoryMethod, HistoryResult
from xpduel.game.duels.types import (
    ActiveDuel,
    CompletedDuel,
    DrawnDuel,
    Duel,
    DuelCore,
    DuelHistoryEntry,
    DuelParticipant,
    DuelTaskSlot,
    ExpiredDuel,
    ForfeitedDuel,
    PendingDuel,
    winner_of,
)
from xpduel.tasks.codec import proof_from_record, proof_to_record


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _required_dt(record: dict[str, Any], field: str) -> datetime:
    value = _dt(record.get(field))
    if value is None:
        raise ValueError(f"duel record is missing {field}")
    return value


def encode_duel(duel: Duel) -> dict[str, Any]:
    """Flattens a duel into the stored shape; progress counters are cached copies."""
    core = duel.core
    return {
        "duel_id": core.duel_id,
        "status": duel.status.value,
        "challenger_id": core.challenger.user_id,
        "challenger_email": core.challenger.email,
        "challenger_display_name": core.challenger.display_name,
        "challenged_id": core.challenged.user_id,
        "challenged_email": core.challenged.email,
        "challenged_display_name": core.challenged.display_name,
        "tasks": [
            {
                "description": slot.description,
                "completed_by_challenger": slot.completed_by_challenger,
                "completed_by_challenged": slot.completed_by_challenged,
                "challenger_proof": proof_to_record(slot.challenger_proof),
                "challenged_proof": proof_to_record(slot.challenged_proof),
            }
            for slot in core.tasks
        ],
        "stake_xp": core.stake_xp,
        "duration_hours": core.duration_hours,
        "sent_at": core.sent_at.isoformat(),
        "deadline": core.deadline.isoformat(),
        "updated_at": core.updated_at.isoformat(),
        "challenger_progress": core.challenger_progress,
        "challenged_progress": core.challenged_progress,
        "accepted_at": _iso(getattr(duel, "accepted_at", None)),
        "winner_id": winner_of(duel),
        "forfeited_by": getattr(duel, "forfeited_by", None),
        "completed_at": _iso(getattr(duel, "completed_at", None)),
        "archive_after": _iso(getattr(duel, "archive_after", None)),
    }


def _decode_core(record: dict[str, Any]) -> DuelCore:
    return DuelCore(
        duel_id=str(record["duel_id"]),
        challenger=DuelParticipant(
            user_id=str(record["challenger_id"]),
            email=str(record.get("challenger_email") or ""),
            display_name=str(record.get("challenger_display_name") or ""),
        ),
        challenged=DuelParticipant(
            user_id=str(record["challenged_id"]),
            email=str(record.get("challenged_email") or ""),
            display_name=str(record.get("challenged_display_name") or ""),
        ),
        tasks=tuple(
            DuelTaskSlot(
                description=str(slot.get("description") or ""),
                completed_by_challenger=bool(slot.get("completed_by_challenger", False)),
                completed_by_challenged=bool(slot.get("completed_by_challenged", False)),
                challenger_proof=proof_from_record(slot.get("challenger_proof")),
                challenged_proof=proof_from_record(slot.get("challenged_proof")),
            )
            for slot in record.get("tasks") or []
        ),
        stake_xp=int(record["stake_xp"]),
        duration_hours=int(record["duration_hours"]),
        sent_at=_required_dt(record, "sent_at"),
        updated_at=_required_dt(record, "updated_at"),
    )


def decode_duel(record: dict[str, Any]) -> Duel:
    core = _decode_core(record)
    status = DuelStatus(record["status"])
    if status is DuelStatus.PENDING:
        return PendingDuel(core=core)
    if status is DuelStatus.ACTIVE:
        return ActiveDuel(core=core, accepted_at=_required_dt(record, "accepted_at"))
    if status is DuelStatus.COMPLETED:
        return CompletedDuel(
            core=core,
            accepted_at=_required_dt(record, "accepted_at"),
            winner_id=str(record["winner_id"]),
            completed_at=_required_dt(record, "completed_at"),
            archive_after=_required_dt(record, "archive_after"),
        )
    if status is DuelStatus.FORFEITED:
        return ForfeitedDuel(
            core=core,
            accepted_at=_required_dt(record, "accepted_at"),
            winner_id=str(record["winner_id"]),
            forfeited_by=str(record["forfeited_by"]),
            completed_at=_required_dt(record, "completed_at"),
            archive_after=_required_dt(record, "archive_after"),
        )
    if status is DuelStatus.DRAWN:
        return DrawnDuel(
            core=core,
            accepted_at=_required_dt(record, "accepted_at"),
            completed_at=_required_dt(record, "completed_at"),
            archive_after=_required_dt(record, "archive_after"),
        )
    return ExpiredDuel(
        core=core,
        accepted_at=_dt(record.get("accepted_at")),
        completed_at=_required_dt(record, "completed_at"),
        archive_after=_required_dt(record, "archive_after"),
    )


def encode_history_entry(entry: DuelHistoryEntry) -> dict[str, Any]:
    return {
        "result": entry.result.value,
        "method": entry.method.value,
        "xp_delta": entry.xp_delta,
        "opponent_name": entry.opponent_name,
        "completed_at": entry.completed_at.isoformat(),
    }


def decode_history_entry(user_id: str, duel_id: str, record: dict[str, Any]) -> DuelHistoryEntry:
    return DuelHistoryEntry(
        duel_id=duel_id,
        user_id=user_id,
        result=HistoryResult(record["result"]),
        method=HistoryMethod(record["method"]),
        xp_delta=int(record.get("xp_delta") or 0),
        opponent_name=str(record.get("opponent_name") or ""),
        completed_at=datetime.fromisoformat(record["completed_at"]),
    )
