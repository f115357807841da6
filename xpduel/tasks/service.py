from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from uuid import uuid4

import structlog

from xpduel.economy.progression import ProgressionService
from xpduel.economy.progression.rules import is_overdue, xp_for_completion
from xpduel.economy.progression.time import progression_local_date
from xpduel.store import keys
from xpduel.store.base import ReplicatedStore
from xpduel.tasks.codec import task_from_record, task_to_record
from xpduel.tasks.errors import (
    DuelTaskEditError,
    TaskNotFoundError,
    TaskStepNotFoundError,
    TaskValidationError,
)
from xpduel.tasks.rules import build_task_stats, duel_task_id, duel_task_text, sort_tasks
from xpduel.tasks.types import Proof, Task, TaskCompletionResult, TaskPriority, TaskStats, TaskStep

logger = structlog.get_logger(__name__)


def _completion_entry_key(task_id: str) -> str:
    return f"task:{task_id}:complete"


class TaskService:
    @staticmethod
    async def _save(store: ReplicatedStore, task: Task) -> Task:
        await store.write(keys.task_key(task.owner_id, task.task_id), task_to_record(task))
        return task

    @staticmethod
    async def get_task(store: ReplicatedStore, *, owner_id: str, task_id: str) -> Task:
        record = await store.read(keys.task_key(owner_id, task_id))
        if record is None:
            raise TaskNotFoundError
        return task_from_record(owner_id, task_id, record)

    @staticmethod
    async def list_tasks(store: ReplicatedStore, *, owner_id: str) -> list[Task]:
        records = await store.scan(keys.tasks_prefix(owner_id))
        tasks = [
            task_from_record(owner_id, keys.child_id(key), record) for key, record in records.items()
        ]
        return sort_tasks(tasks)

    @staticmethod
    async def task_stats(store: ReplicatedStore, *, owner_id: str) -> TaskStats:
        return build_task_stats(await TaskService.list_tasks(store, owner_id=owner_id))

    @staticmethod
    async def create_task(
        store: ReplicatedStore,
        *,
        owner_id: str,
        text: str,
        priority: TaskPriority,
        due_date: date | None,
        now_utc: datetime,
        steps: list[str] | None = None,
    ) -> Task:
        cleaned = (text or "").strip()
        if not cleaned or due_date is None:
            raise TaskValidationError
        task = Task(
            task_id=uuid4().hex,
            owner_id=owner_id,
            text=cleaned,
            priority=TaskPriority(priority),
            due_date=due_date,
            created_at=now_utc,
            updated_at=now_utc,
            steps=tuple(
                TaskStep(step_id=uuid4().hex[:12], text=step.strip())
                for step in steps or []
                if step.strip()
            ),
        )
        await TaskService._save(store, task)
        logger.info("task_created", owner_id=owner_id, task_id=task.task_id)
        return task

    @staticmethod
    async def update_task(
        store: ReplicatedStore,
        *,
        owner_id: str,
        task_id: str,
        now_utc: datetime,
        text: str | None = None,
        priority: TaskPriority | None = None,
        due_date: date | None = None,
        steps: list[TaskStep] | None = None,
    ) -> Task:
        task = await TaskService.get_task(store, owner_id=owner_id, task_id=task_id)
        if task.is_duel_linked:
            raise DuelTaskEditError
        if text is not None and not text.strip():
            raise TaskValidationError
        updated = replace(
            task,
            text=text.strip() if text is not None else task.text,
            priority=TaskPriority(priority) if priority is not None else task.priority,
            due_date=due_date or task.due_date,
            steps=tuple(steps) if steps is not None else task.steps,
            updated_at=now_utc,
        )
        return await TaskService._save(store, updated)

    @staticmethod
    async def delete_task(store: ReplicatedStore, *, owner_id: str, task_id: str) -> None:
        await TaskService.get_task(store, owner_id=owner_id, task_id=task_id)
        await store.delete(keys.task_key(owner_id, task_id))
        await ProgressionService.forget_entries(
            store,
            user_id=owner_id,
            entry_key_prefix=_completion_entry_key(task_id),
        )
        logger.info("task_deleted", owner_id=owner_id, task_id=task_id)

    @staticmethod
    async def toggle_step(
        store: ReplicatedStore,
        *,
        owner_id: str,
        task_id: str,
        step_id: str,
        now_utc: datetime,
    ) -> Task:
        task = await TaskService.get_task(store, owner_id=owner_id, task_id=task_id)
        if not any(step.step_id == step_id for step in task.steps):
            raise TaskStepNotFoundError
        steps = tuple(
            replace(step, completed=not step.completed) if step.step_id == step_id else step
            for step in task.steps
        )
        return await TaskService._save(store, replace(task, steps=steps, updated_at=now_utc))

    @staticmethod
    async def complete_task(
        store: ReplicatedStore,
        *,
        owner_id: str,
        task_id: str,
        now_utc: datetime,
        proof_text: str | None = None,
        proof_image_url: str | None = None,
    ) -> TaskCompletionResult:
        task = await TaskService.get_task(store, owner_id=owner_id, task_id=task_id)
        if task.is_duel_linked:
            return await TaskService._complete_duel_task(
                store,
                task=task,
                now_utc=now_utc,
                proof=Proof(text=proof_text, image_url=proof_image_url, submitted_at=now_utc),
            )

        overdue = is_overdue(task.due_date, today=progression_local_date(now_utc))
        if task.completed:
            return TaskCompletionResult(task=task, xp_awarded=0, overdue=overdue)

        xp_to_award = 0
        if not overdue and task.xp_awarded == 0:
            xp_to_award = xp_for_completion(task.priority, has_steps=bool(task.steps))
            await ProgressionService.record_completion(
                store,
                user_id=owner_id,
                priority=task.priority,
                has_steps=bool(task.steps),
                now_utc=now_utc,
                entry_key=_completion_entry_key(task_id),
            )

        completed = replace(
            task,
            completed=True,
            completed_at=now_utc,
            xp_awarded=task.xp_awarded or xp_to_award,
            updated_at=now_utc,
        )
        await TaskService._save(store, completed)
        logger.info(
            "task_completed",
            owner_id=owner_id,
            task_id=task_id,
            xp_awarded=xp_to_award,
            overdue=overdue,
        )
        return TaskCompletionResult(task=completed, xp_awarded=xp_to_award, overdue=overdue)

    @staticmethod
    async def _complete_duel_task(
        store: ReplicatedStore,
        *,
        task: Task,
        now_utc: datetime,
        proof: Proof,
    ) -> TaskCompletionResult:
        from xpduel.game.duels.errors import DuelSlotAlreadyCompletedError
        from xpduel.game.duels.service import DuelService

        if task.completed:
            return TaskCompletionResult(task=task, xp_awarded=0, overdue=False, routed_to_duel=True)
        try:
            await DuelService.on_duel_task_completed(
                store,
                owner_id=task.owner_id,
                duel_id=task.duel_id,
                slot_index=task.slot_index,
                proof=proof,
                now_utc=now_utc,
            )
        except DuelSlotAlreadyCompletedError:
            # The slot was recorded by an earlier attempt; only the task write is missing.
            logger.info("duel_task_slot_already_recorded", owner_id=task.owner_id, task_id=task.task_id)

        completed = replace(
            task,
            completed=True,
            completed_at=now_utc,
            proof=proof,
            updated_at=now_utc,
        )
        await TaskService._save(store, completed)
        return TaskCompletionResult(task=completed, xp_awarded=0, overdue=False, routed_to_duel=True)

    @staticmethod
    async def reopen_task(
        store: ReplicatedStore,
        *,
        owner_id: str,
        task_id: str,
        now_utc: datetime,
    ) -> Task:
        task = await TaskService.get_task(store, owner_id=owner_id, task_id=task_id)
        if task.is_duel_linked:
            raise DuelTaskEditError
        reopened = replace(task, completed=False, completed_at=None, updated_at=now_utc)
        return await TaskService._save(store, reopened)

    @staticmethod
    async def create_duel_linked_task(
        store: ReplicatedStore,
        *,
        owner_id: str,
        description: str,
        opponent_name: str,
        duel_id: str,
        slot_index: int,
        deadline: datetime,
        now_utc: datetime,
    ) -> Task:
        task_id = duel_task_id(duel_id, slot_index)
        existing = await store.read(keys.task_key(owner_id, task_id))
        if existing is not None:
            return task_from_record(owner_id, task_id, existing)
        task = Task(
            task_id=task_id,
            owner_id=owner_id,
            text=duel_task_text(opponent_name=opponent_name, description=description),
            priority=TaskPriority.HIGH,
            due_date=deadline.date(),
            created_at=now_utc,
            updated_at=now_utc,
            duel_id=duel_id,
            slot_index=slot_index,
        )
        return await TaskService._save(store, task)

    @staticmethod
    async def retire_duel_tasks(store: ReplicatedStore, *, owner_id: str, duel_id: str) -> int:
        retired = 0
        for task in await TaskService.list_tasks(store, owner_id=owner_id):
            if task.duel_id != duel_id or task.completed:
                continue
            await store.delete(keys.task_key(owner_id, task.task_id))
            retired += 1
        if retired:
            logger.info("duel_tasks_retired", owner_id=owner_id, duel_id=duel_id, retired=retired)
        return retired
