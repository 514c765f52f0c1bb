# shiftops/models/task_response.py
from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Text, UniqueConstraint, Uuid, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiftops.models.base import Base, UTCDateTime


class ResponseStatus(str, enum.Enum):
    """Хранимый статус ответа исполнителя.

    Отличается от TaskStatus (вычисляемого): здесь НЕТ completed_late/overdue.
    """

    pending = "pending"
    acknowledged = "acknowledged"
    pending_review = "pending_review"
    completed = "completed"
    rejected = "rejected"


class TaskResponse(Base):
    __tablename__ = "task_responses"
    __table_args__ = (
        # один "живой" ответ на пару (task, user), обновляется upsert-ом
        UniqueConstraint("task_id", "user_id", name="uq_task_responses_task_user"),
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

    status: Mapped[ResponseStatus] = mapped_column(
        SAEnum(ResponseStatus, name="task_response_status"),
        nullable=False,
        default=ResponseStatus.pending,
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    # когда статус менялся последний раз
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

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

    task = relationship("Task", back_populates="responses")
