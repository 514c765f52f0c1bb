# shiftops/services/task_status_service.py
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from shiftops.core.business_time import ensure_utc
from shiftops.models.task import COMPLETED_STATUSES, ArchiveReason, Task, TaskStatus
from shiftops.rules.task_status import completion_progress, resolve_task_status
from shiftops.schemas.task import GeneratorStats, TaskStatusRead

_EXPIRED_REASONS = {ArchiveReason.expired, ArchiveReason.expired_after_shift}


class TaskStatusService:
    """Read path: derived status / progress for tasks (nothing is written)."""

    def __init__(self, db: Session):
        self.db = db

    def _load(self, stmt) -> list[Task]:
        stmt = (
            stmt.options(selectinload(Task.assignments), selectinload(Task.responses))
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars())

    def resolve(self, task_id: UUID, now: datetime) -> TaskStatus:
        tasks = self._load(select(Task).where(Task.id == task_id))
        if not tasks:
            raise LookupError(f"task {task_id} not found")
        return resolve_task_status(tasks[0], ensure_utc(now))

    def resolve_many(self, task_ids: Iterable[UUID], now: datetime) -> dict[UUID, TaskStatus]:
        ids = list(task_ids)
        if not ids:
            return {}
        now = ensure_utc(now)
        tasks = self._load(select(Task).where(Task.id.in_(ids)))
        return {t.id: resolve_task_status(t, now) for t in tasks}

    def read(self, task_id: UUID, now: datetime) -> TaskStatusRead:
        tasks = self._load(select(Task).where(Task.id == task_id))
        if not tasks:
            raise LookupError(f"task {task_id} not found")
        task = tasks[0]
        return TaskStatusRead(
            **_task_fields(task),
            status=resolve_task_status(task, ensure_utc(now)),
            progress=completion_progress(task),
        )

    def generator_stats(self, generator_id: UUID, now: datetime) -> GeneratorStats:
        now = ensure_utc(now)
        tasks = self._load(select(Task).where(Task.generator_id == generator_id))

        completed = expired = 0
        for task in tasks:
            if task.is_archived:
                if task.archive_reason == ArchiveReason.completed:
                    completed += 1
                elif task.archive_reason in _EXPIRED_REASONS:
                    expired += 1
                continue

            status = resolve_task_status(task, now)
            if status in COMPLETED_STATUSES:
                completed += 1
            elif status == TaskStatus.overdue:
                expired += 1

        return GeneratorStats(
            generator_id=generator_id,
            total_generated=len(tasks),
            completed_count=completed,
            expired_count=expired,
        )


def _task_fields(task: Task) -> dict:
    return {
        "id": task.id,
        "dealership_id": task.dealership_id,
        "generator_id": task.generator_id,
        "title": task.title,
        "task_type": task.task_type,
        "response_type": task.response_type,
        "priority": task.priority,
        "appear_at": task.appear_at,
        "deadline_at": task.deadline_at,
        "is_active": task.is_active,
        "archived_at": task.archived_at,
        "archive_reason": task.archive_reason,
    }
