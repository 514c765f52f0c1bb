# shiftops/schemas/recurrence.py
from __future__ import annotations

from datetime import datetime, time

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from shiftops.models.task_generator import Recurrence, TaskGenerator


class GeneratorConfigError(ValueError):
    """Generator definition cannot be evaluated (skip it for this run)."""
    pass


class RecurrenceRule(BaseModel):
    """Validated recurrence part of a TaskGenerator.

    Built from the ORM row right before evaluation; a broken definition turns
    into GeneratorConfigError instead of an exception deep inside the engine.
    """

    model_config = ConfigDict(frozen=True)

    recurrence: Recurrence
    recurrence_time: time
    deadline_time: time
    days_of_week: tuple[int, ...] = ()
    days_of_month: tuple[int, ...] = ()
    start_date: datetime
    end_date: datetime | None = None
    is_active: bool = True

    @field_validator("days_of_week", "days_of_month", mode="before")
    @classmethod
    def require_day_list(cls, v):
        # JSON column: only a list of integers is a day-set ("15" is not [1, 5])
        if v is None:
            return ()
        if not isinstance(v, (list, tuple)):
            raise ValueError(f"expected a list of day numbers, got {type(v).__name__}")
        bad = [d for d in v if isinstance(d, bool) or not isinstance(d, int)]
        if bad:
            raise ValueError(f"day numbers must be integers, got {bad!r}")
        return tuple(v)

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        bad = [d for d in v if not 1 <= d <= 7]
        if bad:
            raise ValueError(f"days_of_week must be ISO weekdays 1..7, got {bad}")
        return tuple(sorted(set(v)))

    @field_validator("days_of_month")
    @classmethod
    def validate_days_of_month(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        bad = [d for d in v if d == 0 or not -31 <= d <= 31]
        if bad:
            raise ValueError(f"days_of_month must be in 1..31 or -31..-1, got {bad}")
        return tuple(sorted(set(v)))

    @model_validator(mode="after")
    def validate_day_sets(self):
        if self.recurrence == Recurrence.weekly and not self.days_of_week:
            raise ValueError("weekly recurrence requires at least one day of week")
        if self.recurrence == Recurrence.monthly and not self.days_of_month:
            raise ValueError("monthly recurrence requires at least one day of month")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date is before start_date")
        return self

    @classmethod
    def from_generator(cls, generator: TaskGenerator) -> "RecurrenceRule":
        try:
            return cls(
                recurrence=generator.recurrence,
                recurrence_time=generator.recurrence_time,
                deadline_time=generator.deadline_time,
                days_of_week=generator.recurrence_days_of_week,
                days_of_month=generator.recurrence_days_of_month,
                start_date=generator.start_date,
                end_date=generator.end_date,
                is_active=generator.is_active,
            )
        except ValidationError as e:
            raise GeneratorConfigError(f"generator {generator.id}: {e}") from e
