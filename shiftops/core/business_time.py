# shiftops/core/business_time.py
from __future__ import annotations

"""Business timezone <-> UTC.

Система использует:
- UTC для хранения в БД (все timestamp-колонки);
- фиксированную бизнес-зону (settings.business_timezone) для любых
  сравнений "сегодня", "эта неделя", "этот месяц", время суток.

Никакой другой модуль не делает astimezone()/ZoneInfo сам: только через
BusinessClock.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from shiftops.core.config import settings


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Aware -> UTC. Naive values are storage values and are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BusinessClock:
    def __init__(self, tz_name: str):
        self.tz_name = tz_name
        self.tz = ZoneInfo(tz_name)

    def __repr__(self) -> str:
        return f"BusinessClock({self.tz_name!r})"

    # ---- conversions ----

    def to_local(self, value: datetime) -> datetime:
        """Any instant -> business wall clock (aware, business tz)."""
        return ensure_utc(value).astimezone(self.tz)

    def to_utc(self, value: datetime) -> datetime:
        """Business wall clock -> UTC. Naive input is read as business time."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=self.tz)
        return value.astimezone(timezone.utc)

    def at(self, day: date, at_time: time) -> datetime:
        """Wall-clock (day, time) in business tz as a UTC instant."""
        wall = datetime.combine(day, at_time.replace(second=0, microsecond=0, tzinfo=None))
        return self.to_utc(wall)

    # ---- calendar helpers (business tz) ----

    def local_date(self, value: datetime) -> date:
        return self.to_local(value).date()

    def start_of_day(self, value: datetime) -> datetime:
        return self.at(self.local_date(value), time(0, 0))

    def end_of_day(self, value: datetime) -> datetime:
        next_day = self.local_date(value) + timedelta(days=1)
        return self.at(next_day, time(0, 0)) - timedelta(microseconds=1)

    def iso_weekday(self, value: datetime) -> int:
        return self.to_local(value).isoweekday()


business_clock = BusinessClock(settings.business_timezone)
