from __future__ import annotations

from datetime import date, datetime
from typing import Any

from xpduel.tasks.types import Proof, Task, TaskPriority, TaskStep


def _optional_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def proof_to_record(proof: Proof | None) -> dict[str, Any] | None:
    if proof is None:
        return None
    return {
        "text": proof.text,
        "image_url": proof.image_url,
        "submitted_at": proof.submitted_at.isoformat(),
    }


def proof_from_record(record: dict[str, Any] | None) -> Proof | None:
    if not record:
        return None
    return Proof(
        text=record.get("text") or None,
        image_url=record.get("image_url") or None,
        submitted_at=datetime.fromisoformat(record["submitted_at"]),
    )


def task_to_record(task: Task) -> dict[str, Any]:
    return {
        "text": task.text,
        "priority": task.priority.value,
        "due_date": task.due_date.isoformat(),
        "completed": task.completed,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
        "created_at": task.created_at.isoformat(),
        "updated_at": task.updated_at.isoformat(),
        "xp_awarded": task.xp_awarded,
        "steps": [
            {"step_id": step.step_id, "text": step.text, "completed": step.completed}
            for step in task.steps
        ],
        "duel_id": task.duel_id,
        "slot_index": task.slot_index,
        "proof": proof_to_record(task.proof),
    }


def task_from_record(owner_id: str, task_id: str, record: dict[str, Any]) -> Task:
    slot_index = record.get("slot_index")
    return Task(
        task_id=task_id,
        owner_id=owner_id,
        text=str(record.get("text") or ""),
        priority=TaskPriority(record.get("priority", TaskPriority.MEDIUM.value)),
        due_date=date.fromisoformat(record["due_date"]),
        created_at=datetime.fromisoformat(record["created_at"]),
        updated_at=datetime.fromisoformat(record["updated_at"]),
        completed=bool(record.get("completed", False)),
        completed_at=_optional_datetime(record.get("completed_at")),
        xp_awarded=int(record.get("xp_awarded") or 0),
        steps=tuple(
            TaskStep(
                step_id=str(step["step_id"]),
                text=str(step.get("text") or ""),
                completed=bool(step.get("completed", False)),
            )
            for step in record.get("steps") or []
        ),
        duel_id=record.get("duel_id"),
        slot_index=int(slot_index) if slot_index is not None else None,
        proof=proof_from_record(record.get("proof")),
    )
