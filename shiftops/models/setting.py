# shiftops/models/setting.py
from __future__ import annotations

import enum
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from shiftops.models.base import Base


class SettingType(str, enum.Enum):
    string = "string"
    integer = "integer"
    boolean = "boolean"
    json = "json"


class DealershipSetting(Base):
    """key/value настройка: dealership_id = NULL -> глобальная."""

    __tablename__ = "settings"
    __table_args__ = (
        UniqueConstraint("dealership_id", "key", name="uq_settings_dealership_key"),
        # NULL в unique не сравнивается: глобальный ключ страхуем отдельно
        Index(
            "uq_settings_global_key",
            "key",
            unique=True,
            postgresql_where=text("dealership_id IS NULL"),
            sqlite_where=text("dealership_id IS NULL"),
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    dealership_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("dealerships.id", ondelete="CASCADE"),
        nullable=True,
    )

    key: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(Text, nullable=False, default=SettingType.string.value)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
