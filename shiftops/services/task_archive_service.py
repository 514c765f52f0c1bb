# shiftops/services/task_archive_service.py
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

import shiftops.models.registry  # noqa: F401
from shiftops.core.business_time import BusinessClock, business_clock, ensure_utc, now_utc
from shiftops.core.db import SessionLocal, session_scope
from shiftops.models.dealership import Dealership
from shiftops.models.shift import Shift
from shiftops.models.task import COMPLETED_STATUSES, ArchiveReason, Task, TaskStatus
from shiftops.rules.task_status import completion_time, resolve_task_status
from shiftops.schemas.sweep import SweepReport
from shiftops.services.settings_service import SettingsService, SettingValueError

"""Archival policy.

Три независимых прогона, каждый идемпотентен:
  - completion: завершённые задачи (completed / completed_late) после cool-down,
    только если дилер разрешил архивирование в этот день;
  - expiry: overdue дольше task_archive_days;
  - after-shift: после закрытия смены + grace часов всё незавершённое с
    дедлайном внутри смены -> expired_after_shift, смена помечается
    archived_tasks_processed (at-most-once).

Архивирование терминально: is_active=false, archived_at, archive_reason.
Каждая задача / смена = отдельная транзакция; перед записью условие
перепроверяется под блокировкой строки.
"""

log = structlog.get_logger()

# outcomes of one unit of work (go into SweepReport.details)
ARCHIVED = "archived"
WOULD_ARCHIVE = "would_archive"


class TaskAlreadyArchived(Exception):
    pass


@dataclass
class ShiftResult:
    outcome: str  # processed | would_archive | grace | already_processed | open | gone
    task_ids: list[UUID] = field(default_factory=list)


def _with_responses(stmt):
    return stmt.options(selectinload(Task.assignments), selectinload(Task.responses))


class TaskArchiveService:
    def __init__(self, db: Session, clock: BusinessClock = business_clock):
        self.db = db
        self.clock = clock

    def _lock_task(self, task_id: UUID) -> Task | None:
        stmt = (
            _with_responses(select(Task).where(Task.id == task_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def _archive(self, task: Task, reason: ArchiveReason, now: datetime) -> None:
        task.is_active = False
        task.archived_at = now
        task.archive_reason = reason
        log.info(
            "archive.task_archived",
            task_id=str(task.id),
            dealership_id=str(task.dealership_id),
            reason=reason.value,
        )

    # ---- manual path ----

    def archive(self, task_id: UUID, reason: ArchiveReason, now: datetime) -> Task:
        now = ensure_utc(now)
        task = self._lock_task(task_id)
        if task is None:
            raise LookupError(f"task {task_id} not found")
        if task.is_archived:
            raise TaskAlreadyArchived(f"task {task_id} archived at {task.archived_at.isoformat()}")

        self._archive(task, ArchiveReason(reason), now)
        self.db.flush()
        return task

    # ---- sweep units (re-check under lock) ----

    def archive_if_completed(
        self,
        task_id: UUID,
        now: datetime,
        cooldown: timedelta,
        completed_before: datetime | None = None,
    ) -> str:
        now = ensure_utc(now)
        task = self._lock_task(task_id)
        if task is None or not task.is_active or task.is_archived:
            return "gone"

        if resolve_task_status(task, now) not in COMPLETED_STATUSES:
            return "not_completed"

        done_at = completion_time(task)
        if done_at is None or now - done_at < cooldown:
            return "cooldown"
        if completed_before is not None and done_at >= completed_before:
            return "too_recent"

        self._archive(task, ArchiveReason.completed, now)
        self.db.flush()
        return ARCHIVED

    def archive_if_expired(self, task_id: UUID, now: datetime, threshold: timedelta) -> str:
        now = ensure_utc(now)
        task = self._lock_task(task_id)
        if task is None or not task.is_active or task.is_archived:
            return "gone"

        if resolve_task_status(task, now) != TaskStatus.overdue:
            return "not_overdue"
        if task.deadline_at is None or now - task.deadline_at <= threshold:
            return "too_recent"

        self._archive(task, ArchiveReason.expired, now)
        self.db.flush()
        return ARCHIVED

    def process_shift(
        self,
        shift_id: UUID,
        now: datetime,
        *,
        force: bool = False,
        dry_run: bool = False,
        settings: SettingsService | None = None,
    ) -> ShiftResult:
        now = ensure_utc(now)
        shift = self.db.execute(
            select(Shift).where(Shift.id == shift_id).with_for_update()
        ).scalar_one_or_none()
        if shift is None:
            return ShiftResult("gone")
        if shift.archived_tasks_processed:
            return ShiftResult("already_processed")
        if shift.shift_end is None:
            return ShiftResult("open")

        settings = settings or SettingsService(self.db)
        grace = timedelta(hours=settings.archive_overdue_hours_after_shift(shift.dealership_id))
        if not force and now < shift.shift_end + grace:
            return ShiftResult("grace")

        tasks = self.db.execute(
            _with_responses(
                select(Task).where(
                    Task.dealership_id == shift.dealership_id,
                    Task.is_active.is_(True),
                    Task.archived_at.is_(None),
                    Task.deadline_at.is_not(None),
                    Task.deadline_at >= shift.shift_start,
                    Task.deadline_at <= shift.shift_end,
                )
            )
            .order_by(Task.deadline_at, Task.id)
            .with_for_update()
        ).scalars().all()

        result = ShiftResult(WOULD_ARCHIVE if dry_run else "processed")
        for task in tasks:
            # completed_late тоже "сделано": такие задачи здесь не трогаем
            if resolve_task_status(task, now) in COMPLETED_STATUSES:
                continue
            result.task_ids.append(task.id)
            if not dry_run:
                self._archive(task, ArchiveReason.expired_after_shift, now)

        if not dry_run:
            shift.archived_tasks_processed = True
            self.db.flush()

        log.info(
            "archive.shift_processed",
            shift_id=str(shift.id),
            dealership_id=str(shift.dealership_id),
            archived=len(result.task_ids),
            dry_run=dry_run,
        )
        return result


# ---------------------------------------------------------------------------
# sweeps
# ---------------------------------------------------------------------------


def _active_dealership_ids(db: Session) -> list[UUID]:
    return list(
        db.execute(
            select(Dealership.id).where(Dealership.is_active.is_(True)).order_by(Dealership.id)
        ).scalars()
    )


def _active_tasks(db: Session, dealership_id: UUID, *, deadline_before: datetime | None = None) -> list[Task]:
    stmt = _with_responses(
        select(Task).where(
            Task.dealership_id == dealership_id,
            Task.is_active.is_(True),
            Task.archived_at.is_(None),
        )
    )
    if deadline_before is not None:
        stmt = stmt.where(Task.deadline_at.is_not(None), Task.deadline_at < deadline_before)
    return list(db.execute(stmt.order_by(Task.created_at, Task.id)).scalars())


def _completion_gate(settings: SettingsService, dealership_id: UUID, now: datetime, clock: BusinessClock) -> str | None:
    """None when this run may archive completed tasks of the dealership."""
    if not settings.auto_archive_enabled(dealership_id):
        return "auto_archive_disabled"
    day = settings.auto_archive_day_of_week(dealership_id)
    if day and day != clock.iso_weekday(now):
        return "not_archive_day"
    if settings.archive_mode(dealership_id) == "weekend" and clock.iso_weekday(now) != 7:
        return "not_weekend"
    return None


def _completed_before(settings: SettingsService, dealership_id: UUID, now: datetime, clock: BusinessClock) -> datetime | None:
    """Completion cut-off of the dealership's archive_mode (None = cool-down only)."""
    mode = settings.archive_mode(dealership_id)
    if mode == "days":
        return clock.start_of_day(now - timedelta(days=settings.task_archive_days(dealership_id)))
    if mode == "end_of_day":
        return clock.start_of_day(now)
    return None


def _expiry_gate(settings: SettingsService, dealership_id: UUID, now: datetime, clock: BusinessClock) -> str | None:
    day = settings.archive_overdue_day_of_week(dealership_id)
    if day and day != clock.iso_weekday(now):
        return "not_archive_day"
    return None


def _run_task_unit(
    report: SweepReport,
    session_factory: sessionmaker,
    clock: BusinessClock,
    task_id: UUID,
    action: Callable[[TaskArchiveService], str],
) -> None:
    report.examined += 1
    try:
        with session_scope(session_factory) as db:
            outcome = action(TaskArchiveService(db, clock))
    except Exception as e:
        report.failed += 1
        report.add("task", task_id, "failed", repr(e))
        log.exception("archive.task_failed", task_id=str(task_id))
        return

    if outcome == ARCHIVED:
        report.affected += 1
    else:
        report.skipped += 1
    report.add("task", task_id, outcome)


def _finish(report: SweepReport) -> SweepReport:
    report.finished_at = now_utc()
    log.info(
        "sweep.finished",
        sweep=report.sweep,
        examined=report.examined,
        affected=report.affected,
        skipped=report.skipped,
        failed=report.failed,
        dry_run=report.dry_run,
    )
    return report


def run_completion_archive_sweep(
    session_factory: sessionmaker = SessionLocal,
    *,
    now: datetime | None = None,
    force: bool = False,
    clock: BusinessClock = business_clock,
) -> SweepReport:
    now = ensure_utc(now) if now is not None else now_utc()
    report = SweepReport(sweep="archive_completed", now=now, started_at=now_utc(), force=force)

    structlog.contextvars.bind_contextvars(sweep=report.sweep)
    try:
        with session_factory() as db:
            dealership_ids = _active_dealership_ids(db)

        for dealership_id in dealership_ids:
            try:
                with session_factory() as db:
                    settings = SettingsService(db)
                    gate = None if force else _completion_gate(settings, dealership_id, now, clock)
                    cooldown = timedelta(hours=settings.archive_completed_cooldown_hours(dealership_id))
                    completed_before = _completed_before(settings, dealership_id, now, clock)
                    candidates = [] if gate else [
                        t.id for t in _active_tasks(db, dealership_id)
                        if resolve_task_status(t, now) in COMPLETED_STATUSES
                    ]
            except SettingValueError as e:
                report.add("dealership", dealership_id, "config_error", str(e))
                log.warning("archive.config_error", dealership_id=str(dealership_id), error=str(e))
                continue
            except Exception as e:
                report.failed += 1
                report.add("dealership", dealership_id, "failed", repr(e))
                log.exception("archive.dealership_failed", dealership_id=str(dealership_id))
                continue

            if gate:
                report.add("dealership", dealership_id, "skipped", gate)
                log.info("archive.dealership_gated", dealership_id=str(dealership_id), reason=gate)
                continue

            for task_id in candidates:
                _run_task_unit(
                    report, session_factory, clock, task_id,
                    lambda svc: svc.archive_if_completed(task_id, now, cooldown, completed_before),
                )
    finally:
        structlog.contextvars.unbind_contextvars("sweep")

    return _finish(report)


def run_expiry_archive_sweep(
    session_factory: sessionmaker = SessionLocal,
    *,
    now: datetime | None = None,
    force: bool = False,
    clock: BusinessClock = business_clock,
) -> SweepReport:
    now = ensure_utc(now) if now is not None else now_utc()
    report = SweepReport(sweep="archive_expired", now=now, started_at=now_utc(), force=force)

    structlog.contextvars.bind_contextvars(sweep=report.sweep)
    try:
        with session_factory() as db:
            dealership_ids = _active_dealership_ids(db)

        for dealership_id in dealership_ids:
            try:
                with session_factory() as db:
                    settings = SettingsService(db)
                    gate = None if force else _expiry_gate(settings, dealership_id, now, clock)
                    threshold = timedelta(days=settings.task_archive_days(dealership_id))
                    candidates = [] if gate else [
                        t.id for t in _active_tasks(db, dealership_id, deadline_before=now - threshold)
                        if resolve_task_status(t, now) == TaskStatus.overdue
                    ]
            except SettingValueError as e:
                report.add("dealership", dealership_id, "config_error", str(e))
                log.warning("archive.config_error", dealership_id=str(dealership_id), error=str(e))
                continue
            except Exception as e:
                report.failed += 1
                report.add("dealership", dealership_id, "failed", repr(e))
                log.exception("archive.dealership_failed", dealership_id=str(dealership_id))
                continue

            if gate:
                report.add("dealership", dealership_id, "skipped", gate)
                log.info("archive.dealership_gated", dealership_id=str(dealership_id), reason=gate)
                continue

            for task_id in candidates:
                _run_task_unit(
                    report, session_factory, clock, task_id,
                    lambda svc: svc.archive_if_expired(task_id, now, threshold),
                )
    finally:
        structlog.contextvars.unbind_contextvars("sweep")

    return _finish(report)


def run_shift_archive_sweep(
    session_factory: sessionmaker = SessionLocal,
    *,
    now: datetime | None = None,
    force: bool = False,
    dry_run: bool = False,
    clock: BusinessClock = business_clock,
) -> SweepReport:
    """Archive unfinished work of closed shifts; each shift at most once."""
    now = ensure_utc(now) if now is not None else now_utc()
    report = SweepReport(
        sweep="archive_after_shift", now=now, started_at=now_utc(), force=force, dry_run=dry_run
    )

    structlog.contextvars.bind_contextvars(sweep=report.sweep)
    try:
        with session_factory() as db:
            shift_ids = list(
                db.execute(
                    select(Shift.id)
                    .where(
                        Shift.archived_tasks_processed.is_(False),
                        Shift.shift_end.is_not(None),
                        Shift.shift_end <= now,
                    )
                    .order_by(Shift.shift_end, Shift.id)
                ).scalars()
            )

        for shift_id in shift_ids:
            report.examined += 1
            try:
                with session_scope(session_factory) as db:
                    result = TaskArchiveService(db, clock).process_shift(
                        shift_id, now, force=force, dry_run=dry_run
                    )
            except SettingValueError as e:
                report.skipped += 1
                report.add("shift", shift_id, "config_error", str(e))
                log.warning("archive.config_error", shift_id=str(shift_id), error=str(e))
                continue
            except Exception as e:
                report.failed += 1
                report.add("shift", shift_id, "failed", repr(e))
                log.exception("archive.shift_failed", shift_id=str(shift_id))
                continue

            if result.outcome not in ("processed", WOULD_ARCHIVE):
                report.skipped += 1
            report.add("shift", shift_id, result.outcome, f"{len(result.task_ids)} task(s)")

            task_outcome = WOULD_ARCHIVE if dry_run else ARCHIVED
            for task_id in result.task_ids:
                report.affected += 1
                report.add("task", task_id, task_outcome, f"shift {shift_id}")
    finally:
        structlog.contextvars.unbind_contextvars("sweep")

    return _finish(report)
