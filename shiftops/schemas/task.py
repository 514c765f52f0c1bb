# shiftops/schemas/task.py

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from shiftops.models.task import ArchiveReason, Priority, ResponseType, TaskStatus, TaskType


class CompletionProgress(BaseModel):
    total_assignees: int
    completed_count: int
    pending_review_count: int
    rejected_count: int
    pending_count: int
    percentage: int


class TaskStatusRead(BaseModel):
    id: UUID
    dealership_id: UUID
    generator_id: UUID | None = None
    title: str
    task_type: TaskType
    response_type: ResponseType
    priority: Priority
    appear_at: datetime | None = None
    deadline_at: datetime | None = None
    is_active: bool
    archived_at: datetime | None = None
    archive_reason: ArchiveReason | None = None

    # вычисляемые поля (в БД их нет)
    status: TaskStatus
    progress: CompletionProgress

    model_config = {"from_attributes": True}


class GeneratorStats(BaseModel):
    generator_id: UUID
    total_generated: int
    completed_count: int
    expired_count: int
