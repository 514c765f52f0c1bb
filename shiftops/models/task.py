# shiftops/models/task.py
from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiftops.models.base import Base, UTCDateTime


class TaskStatus(str, enum.Enum):
    """Вычисляемый статус задачи (по ответам исполнителей).

    НИКОГДА не хранится: ни в tasks, ни в task_responses.
    Хранимые статусы ответа: ResponseStatus (models/task_response.py).
    """

    pending = "pending"
    acknowledged = "acknowledged"
    pending_review = "pending_review"
    completed = "completed"
    completed_late = "completed_late"
    overdue = "overdue"


COMPLETED_STATUSES = frozenset({TaskStatus.completed, TaskStatus.completed_late})


class TaskType(str, enum.Enum):
    """individual / group. На правило завершения не влияет."""

    individual = "individual"
    group = "group"


class ResponseType(str, enum.Enum):
    acknowledge = "acknowledge"
    complete = "complete"


class Priority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class ArchiveReason(str, enum.Enum):
    completed = "completed"
    expired = "expired"
    expired_after_shift = "expired_after_shift"


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        # не больше одного экземпляра на генератор за период
        UniqueConstraint("generator_id", "generation_period", name="uq_tasks_generator_period"),
        # архив терминален: archived_at => is_active = false
        CheckConstraint(
            "archived_at IS NULL OR is_active = false",
            name="ck_tasks_archived_inactive",
        ),
        CheckConstraint(
            "(archived_at IS NULL) = (archive_reason IS NULL)",
            name="ck_tasks_archive_reason",
        ),
        Index("ix_tasks_dealership_active", "dealership_id", "is_active"),
        Index("ix_tasks_deadline_at", "deadline_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    dealership_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("dealerships.id", ondelete="CASCADE"),
        nullable=False,
    )

    # NULL = задача создана вручную, не генератором
    generator_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("task_generators.id", ondelete="SET NULL"),
        nullable=True,
    )
    # маркер периода генерации (см. rules/recurrence.period_key)
    generation_period: Mapped[str | None] = mapped_column(Text, nullable=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    appear_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    deadline_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    task_type: Mapped[TaskType] = mapped_column(
        SAEnum(TaskType, name="task_type"),
        nullable=False,
        default=TaskType.individual,
    )
    response_type: Mapped[ResponseType] = mapped_column(
        SAEnum(ResponseType, name="response_type"),
        nullable=False,
        default=ResponseType.acknowledge,
    )
    priority: Mapped[Priority] = mapped_column(
        SAEnum(Priority, name="task_priority"),
        nullable=False,
        default=Priority.medium,
    )
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    archived_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    archive_reason: Mapped[ArchiveReason | None] = mapped_column(
        SAEnum(ArchiveReason, name="archive_reason"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    assignments: Mapped[list["TaskAssignment"]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskAssignment.created_at",
    )
    responses: Mapped[list["TaskResponse"]] = relationship(
        "TaskResponse",
        back_populates="task",
        cascade="all, delete-orphan",
    )

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


class TaskAssignment(Base):
    __tablename__ = "task_assignments"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_assignments_task_user"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    task_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        nullable=False,
    )

    task: Mapped[Task] = relationship(back_populates="assignments")
