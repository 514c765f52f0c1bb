# shiftops/schemas/sweep.py

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class UnitOutcome(BaseModel):
    """One unit of work inside a sweep (a generator, a task, a shift)."""

    unit: str  # generator | task | shift | dealership
    id: UUID | None = None
    outcome: str  # created | archived | skipped | failed | would_archive | ...
    detail: str | None = None


class SweepReport(BaseModel):
    sweep: str
    now: datetime
    started_at: datetime
    finished_at: datetime | None = None

    examined: int = 0
    affected: int = 0
    skipped: int = 0
    failed: int = 0

    dry_run: bool = False
    force: bool = False

    details: list[UnitOutcome] = Field(default_factory=list)

    def add(self, unit: str, id: UUID | None, outcome: str, detail: str | None = None) -> None:
        self.details.append(UnitOutcome(unit=unit, id=id, outcome=outcome, detail=detail))
