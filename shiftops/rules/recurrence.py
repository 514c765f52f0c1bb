# shiftops/rules/recurrence.py

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from shiftops.core.business_time import BusinessClock, business_clock
from shiftops.models.task_generator import Recurrence
from shiftops.schemas.recurrence import RecurrenceRule

"""Recurrence engine: пора ли генератору выпустить новый экземпляр.

Порядок проверок (первая несработавшая даёт skip_reason):
  active -> окно start/end -> период уже закрыт курсором -> время суток -> день

Вся календарная арифметика в бизнес-зоне, наружу отдаются только
appear_at / deadline_at в UTC.

Период (period_key):
  daily   -> календарный день
  weekly  -> ISO-неделя, если в наборе один день; иначе календарный день
  monthly -> месяц, если в этом месяце один эффективный день; иначе день
Так несколько триггеров в одном периоде дают по экземпляру на каждый.
"""


class SkipReason(str, Enum):
    INACTIVE = "inactive"
    NOT_RECURRING = "not_recurring"
    BEFORE_START = "before_start"
    AFTER_END = "after_end"
    ALREADY_GENERATED = "already_generated"
    BEFORE_TIME = "before_time"
    DAY_MISMATCH = "day_mismatch"


@dataclass(frozen=True)
class Occurrence:
    should_generate: bool
    appear_at: datetime | None = None
    deadline_at: datetime | None = None
    period_key: str | None = None
    skip_reason: SkipReason | None = None


def effective_month_day(value: int, year: int, month: int) -> int | None:
    """Configured day-of-month value -> actual day in (year, month).

    Positive d: min(d, days_in_month). Negative v: days_in_month + v + 1
    (-1 = last day). None when a negative value falls before day 1.
    """
    days_in_month = calendar.monthrange(year, month)[1]
    if value > 0:
        return min(value, days_in_month)
    day = days_in_month + value + 1
    return day if day >= 1 else None


def effective_month_days(values: tuple[int, ...], year: int, month: int) -> set[int]:
    days = (effective_month_day(v, year, month) for v in values)
    return {d for d in days if d is not None}


def period_key(rule: RecurrenceRule, local_day: date) -> str | None:
    if rule.recurrence == Recurrence.daily:
        return local_day.isoformat()

    if rule.recurrence == Recurrence.weekly:
        if len(rule.days_of_week) > 1:
            return local_day.isoformat()
        iso_year, iso_week, _ = local_day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"

    if rule.recurrence == Recurrence.monthly:
        if len(effective_month_days(rule.days_of_month, local_day.year, local_day.month)) > 1:
            return local_day.isoformat()
        return f"{local_day.year}-{local_day.month:02d}"

    return None


def matches_day(rule: RecurrenceRule, local_day: date) -> bool:
    if rule.recurrence == Recurrence.daily:
        return True
    if rule.recurrence == Recurrence.weekly:
        return local_day.isoweekday() in rule.days_of_week
    if rule.recurrence == Recurrence.monthly:
        return local_day.day in effective_month_days(rule.days_of_month, local_day.year, local_day.month)
    return False


def occurrence_times(
    rule: RecurrenceRule,
    local_day: date,
    clock: BusinessClock = business_clock,
) -> tuple[datetime, datetime]:
    """(appear_at, deadline_at) in UTC for an instance appearing on local_day.

    Deadline rolls to the next day when its time-of-day is earlier than the
    appear time (e.g. 22:00 -> 02:00).
    """
    appear_at = clock.at(local_day, rule.recurrence_time)

    deadline_day = local_day
    if rule.deadline_time.replace(second=0, microsecond=0) < rule.recurrence_time.replace(second=0, microsecond=0):
        deadline_day = local_day + timedelta(days=1)
    deadline_at = clock.at(deadline_day, rule.deadline_time)

    return appear_at, deadline_at


def evaluate(
    rule: RecurrenceRule,
    now: datetime,
    *,
    last_generated_at: datetime | None,
    clock: BusinessClock = business_clock,
) -> Occurrence:
    """Decide whether a new instance is due at `now` given the cursor."""
    if not rule.is_active:
        return Occurrence(False, skip_reason=SkipReason.INACTIVE)

    if rule.recurrence == Recurrence.none:
        return Occurrence(False, skip_reason=SkipReason.NOT_RECURRING)

    if now < clock.start_of_day(rule.start_date):
        return Occurrence(False, skip_reason=SkipReason.BEFORE_START)
    if rule.end_date is not None and now > clock.end_of_day(rule.end_date):
        return Occurrence(False, skip_reason=SkipReason.AFTER_END)

    today = clock.local_date(now)
    key = period_key(rule, today)

    if last_generated_at is not None:
        if period_key(rule, clock.local_date(last_generated_at)) == key:
            return Occurrence(False, period_key=key, skip_reason=SkipReason.ALREADY_GENERATED)

    appear_at, deadline_at = occurrence_times(rule, today, clock)

    if now < appear_at:
        return Occurrence(False, appear_at, deadline_at, key, SkipReason.BEFORE_TIME)

    if not matches_day(rule, today):
        return Occurrence(False, appear_at, deadline_at, key, SkipReason.DAY_MISMATCH)

    return Occurrence(True, appear_at, deadline_at, key)
