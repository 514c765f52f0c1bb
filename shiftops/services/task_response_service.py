# shiftops/services/task_response_service.py
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftops.core.business_time import ensure_utc, now_utc
from shiftops.models.task import Task, TaskAssignment
from shiftops.models.task_response import ResponseStatus, TaskResponse
from shiftops.rules.task_status import stored_status
from shiftops.services.task_archive_service import TaskAlreadyArchived

log = structlog.get_logger()


class InvalidResponseStatus(ValueError):
    pass


class NotAssigned(Exception):
    pass


class TaskResponseService:
    """Upsert of the single (task, user) response.

    Only stored statuses are accepted; completed_late / overdue are computed
    by the resolver and never written here.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        task_id: UUID,
        user_id: UUID,
        status: Any,
        *,
        at: datetime | None = None,
        comment: str | None = None,
    ) -> TaskResponse:
        try:
            status = stored_status(status)
        except ValueError as e:
            raise InvalidResponseStatus(str(e)) from e

        at = ensure_utc(at) if at is not None else now_utc()

        task = self.db.execute(
            select(Task).where(Task.id == task_id).with_for_update()
        ).scalar_one_or_none()
        if task is None:
            raise LookupError(f"task {task_id} not found")
        if task.is_archived:
            raise TaskAlreadyArchived(f"task {task_id} is archived")

        assigned = self.db.execute(
            select(TaskAssignment.id).where(
                TaskAssignment.task_id == task_id,
                TaskAssignment.user_id == user_id,
            )
        ).scalar_one_or_none()
        if assigned is None:
            raise NotAssigned(f"user {user_id} is not assigned to task {task_id}")

        response = self.db.execute(
            select(TaskResponse).where(
                TaskResponse.task_id == task_id,
                TaskResponse.user_id == user_id,
            )
        ).scalar_one_or_none()

        if response is None:
            response = TaskResponse(task_id=task_id, user_id=user_id, created_at=at)
            self.db.add(response)

        previous = response.status
        response.status = status
        response.responded_at = at
        if comment is not None:
            response.comment = comment

        self.db.flush()
        log.info(
            "response.recorded",
            task_id=str(task_id),
            user_id=str(user_id),
            status=status.value,
            previous=previous.value if isinstance(previous, ResponseStatus) else previous,
        )
        return response
