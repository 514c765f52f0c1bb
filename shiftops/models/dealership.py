# shiftops/models/dealership.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from shiftops.models.base import Base, UTCDateTime


class Dealership(Base):
    __tablename__ = "dealerships"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        nullable=False,
    )


class User(Base):
    """Сотрудник. Здесь только то, что нужно ядру (ссылки из назначений)."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)

    dealership_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("dealerships.id", ondelete="SET NULL"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
