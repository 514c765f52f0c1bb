# shiftops/models/shift.py
from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from shiftops.models.base import Base, UTCDateTime


class ShiftStatus(str, enum.Enum):
    open = "open"
    closed = "closed"
    late = "late"


class Shift(Base):
    __tablename__ = "shifts"
    __table_args__ = (
        Index("ix_shifts_archive_pending", "archived_tasks_processed", "shift_end"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    dealership_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("dealerships.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    shift_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    # NULL = смена ещё открыта
    shift_end: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    status: Mapped[str] = mapped_column(Text, nullable=False, default=ShiftStatus.open.value)

    # shift-sweep обработал эту смену (at-most-once)
    archived_tasks_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        nullable=False,
    )
