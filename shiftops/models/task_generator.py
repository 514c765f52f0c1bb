# shiftops/models/task_generator.py
from __future__ import annotations

import enum
from datetime import datetime, time
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, ForeignKey, Text, Time, UniqueConstraint, Uuid, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiftops.models.base import Base, UTCDateTime
from shiftops.models.task import Priority, ResponseType, TaskType


class Recurrence(str, enum.Enum):
    none = "none"
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class TaskGenerator(Base):
    """Шаблон повторяющейся задачи.

    Определение (recurrence_*, время, окно действия) меняет внешний CRUD.
    Курсор last_generated_at двигает только TaskGenerationService
    под блокировкой строки.
    """

    __tablename__ = "task_generators"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    dealership_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("dealerships.id", ondelete="CASCADE"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Stored as plain text: a bad value must surface as a config error of this
    # generator, not as a load failure of the whole sweep.
    recurrence: Mapped[str] = mapped_column(Text, nullable=False, default=Recurrence.daily.value)

    # время появления / дедлайна (стенные часы бизнес-зоны)
    recurrence_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    deadline_time: Mapped[time | None] = mapped_column(Time, nullable=True)

    # ISO 1..7 (Mon..Sun)
    recurrence_days_of_week: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    # 1..31 или -1..-31 (-1 = последний день месяца)
    recurrence_days_of_month: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)

    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # generation cursor: момент последней генерации (UTC)
    last_generated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

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

    assignments: Mapped[list["TaskGeneratorAssignment"]] = relationship(
        back_populates="generator",
        cascade="all, delete-orphan",
    )


class TaskGeneratorAssignment(Base):
    __tablename__ = "task_generator_assignments"
    __table_args__ = (
        UniqueConstraint("generator_id", "user_id", name="uq_generator_assignments_generator_user"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    generator_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("task_generators.id", ondelete="CASCADE"),
        nullable=False,
    )
    # без FK на users: удалённый сотрудник должен всплыть как integrity error
    # генератора, а не молча исчезнуть из назначений
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)

    generator: Mapped[TaskGenerator] = relationship(back_populates="assignments")
