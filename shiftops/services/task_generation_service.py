# shiftops/services/task_generation_service.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

import shiftops.models.registry  # noqa: F401
from shiftops.core.business_time import BusinessClock, business_clock, ensure_utc, now_utc
from shiftops.core.db import SessionLocal, session_scope
from shiftops.models.dealership import Dealership, User
from shiftops.models.task import Task, TaskAssignment
from shiftops.models.task_generator import TaskGenerator
from shiftops.rules.recurrence import Occurrence, evaluate
from shiftops.schemas.recurrence import GeneratorConfigError, RecurrenceRule
from shiftops.schemas.sweep import SweepReport

log = structlog.get_logger()


class GeneratorIntegrityError(Exception):
    """Generator points at a missing dealership or has no usable assignees."""
    pass


class TaskGenerationService:
    def __init__(self, db: Session, clock: BusinessClock = business_clock):
        self.db = db
        self.clock = clock

    def _lock_generator(self, generator_id: UUID) -> TaskGenerator | None:
        # ВАЖНО: FOR UPDATE держится до конца транзакции вызывающего,
        # поэтому второй параллельный прогон ждёт и потом видит новый курсор.
        return self.db.execute(
            select(TaskGenerator)
            .where(TaskGenerator.id == generator_id)
            .with_for_update()
        ).scalar_one_or_none()

    def _assignee_ids(self, generator: TaskGenerator) -> list[UUID]:
        dealership = self.db.get(Dealership, generator.dealership_id)
        if dealership is None:
            raise GeneratorIntegrityError(
                f"generator {generator.id} references missing dealership {generator.dealership_id}"
            )

        user_ids = sorted({a.user_id for a in generator.assignments})
        if not user_ids:
            raise GeneratorIntegrityError(f"generator {generator.id} has no assignees")

        found = set(
            self.db.execute(select(User.id).where(User.id.in_(user_ids))).scalars()
        )
        missing = [uid for uid in user_ids if uid not in found]
        if missing:
            raise GeneratorIntegrityError(
                f"generator {generator.id} references missing users: {', '.join(map(str, missing))}"
            )
        return user_ids

    def check(self, generator: TaskGenerator, now: datetime) -> Occurrence:
        """Evaluate without side effects (no lock, no writes)."""
        rule = RecurrenceRule.from_generator(generator)
        return evaluate(rule, ensure_utc(now), last_generated_at=generator.last_generated_at, clock=self.clock)

    def generate_if_due(self, generator_id: UUID, now: datetime) -> tuple[Task | None, Occurrence | None]:
        """Check-and-act under the generator row lock.

        Must run inside the caller's transaction: Task, its assignments and the
        advanced cursor are committed together or not at all.
        """
        now = ensure_utc(now)

        generator = self._lock_generator(generator_id)
        if generator is None:
            return None, None

        occurrence = self.check(generator, now)
        if not occurrence.should_generate:
            return None, occurrence

        user_ids = self._assignee_ids(generator)

        task = Task(
            dealership_id=generator.dealership_id,
            generator_id=generator.id,
            generation_period=occurrence.period_key,
            title=generator.title,
            description=generator.description,
            appear_at=occurrence.appear_at,
            deadline_at=occurrence.deadline_at,
            task_type=generator.task_type,
            response_type=generator.response_type,
            priority=generator.priority,
            tags=list(generator.tags) if generator.tags else None,
            is_active=True,
        )
        for user_id in user_ids:
            task.assignments.append(TaskAssignment(user_id=user_id))
        self.db.add(task)

        generator.last_generated_at = now

        # unique(generator_id, generation_period) ловит гонку, если блокировку
        # кто-то обошёл: IntegrityError откатит всю единицу работы
        self.db.flush()
        return task, occurrence


def _eligible_generator_ids(db: Session) -> list[UUID]:
    stmt = (
        select(TaskGenerator.id)
        .outerjoin(Dealership, Dealership.id == TaskGenerator.dealership_id)
        .where(
            TaskGenerator.is_active.is_(True),
            # deleted dealership is still listed: it must surface as an integrity error
            or_(Dealership.id.is_(None), Dealership.is_active.is_(True)),
        )
        .order_by(TaskGenerator.created_at, TaskGenerator.id)
    )
    return list(db.execute(stmt).scalars())


def run_generation_sweep(
    session_factory: sessionmaker = SessionLocal,
    *,
    now: datetime | None = None,
    clock: BusinessClock = business_clock,
) -> SweepReport:
    """Recurrence sweep: one unit of work (own transaction) per generator.

    A failing generator is logged and counted; the rest of the batch goes on.
    Safe to re-run and to overlap with another run.
    """
    now = ensure_utc(now) if now is not None else now_utc()
    report = SweepReport(sweep="generate", now=now, started_at=now_utc())

    structlog.contextvars.bind_contextvars(sweep=report.sweep)
    try:
        with session_factory() as db:
            generator_ids = _eligible_generator_ids(db)

        for generator_id in generator_ids:
            report.examined += 1
            try:
                with session_scope(session_factory) as db:
                    task, occurrence = TaskGenerationService(db, clock).generate_if_due(generator_id, now)
                    task_id = task.id if task is not None else None
                    period = occurrence.period_key if occurrence is not None else None
            except GeneratorConfigError as e:
                report.skipped += 1
                report.add("generator", generator_id, "config_error", str(e))
                log.warning("generator.config_error", generator_id=str(generator_id), error=str(e))
            except GeneratorIntegrityError as e:
                report.skipped += 1
                report.add("generator", generator_id, "integrity_error", str(e))
                log.warning("generator.integrity_error", generator_id=str(generator_id), error=str(e))
            except IntegrityError:
                report.skipped += 1
                report.add("generator", generator_id, "skipped", "period already generated")
                log.info("generator.duplicate_period", generator_id=str(generator_id))
            except Exception as e:
                report.failed += 1
                report.add("generator", generator_id, "failed", repr(e))
                log.exception("generator.failed", generator_id=str(generator_id))
            else:
                if task_id is not None:
                    report.affected += 1
                    report.add("generator", generator_id, "created", period)
                    log.info(
                        "generator.task_created",
                        generator_id=str(generator_id),
                        task_id=str(task_id),
                        period=period,
                    )
                else:
                    reason = occurrence.skip_reason.value if occurrence and occurrence.skip_reason else "gone"
                    report.skipped += 1
                    report.add("generator", generator_id, "skipped", reason)
                    log.debug("generator.not_due", generator_id=str(generator_id), reason=reason)
    finally:
        structlog.contextvars.unbind_contextvars("sweep")

    report.finished_at = now_utc()
    log.info(
        "sweep.finished",
        sweep=report.sweep,
        examined=report.examined,
        created=report.affected,
        skipped=report.skipped,
        failed=report.failed,
    )
    return report
