# shiftops/models/base.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from shiftops.core.business_time import ensure_utc


class UTCDateTime(TypeDecorator):
    """timestamptz that always comes back as aware UTC.

    SQLite (tests) has no tz support and returns naive values; Postgres returns
    aware values in the session zone. Both are normalized to UTC here.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime is not allowed for UTCDateTime columns")
        return ensure_utc(value)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        return ensure_utc(value)


class Base(DeclarativeBase):
    pass
