# tests/factories.py
from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Any

from shiftops.core.business_time import BusinessClock
from shiftops.models.dealership import Dealership, User
from shiftops.models.setting import DealershipSetting, SettingType
from shiftops.models.shift import Shift, ShiftStatus
from shiftops.models.task import Task, TaskAssignment
from shiftops.models.task_generator import TaskGenerator, TaskGeneratorAssignment
from shiftops.models.task_response import ResponseStatus, TaskResponse
from shiftops.services.settings_service import encode_value

# тесты не зависят от BUSINESS_TIMEZONE в окружении
CLOCK = BusinessClock("Asia/Yekaterinburg")


def local(y: int, m: int, d: int, hh: int = 0, mm: int = 0) -> datetime:
    """Business wall clock -> aware UTC."""
    return CLOCK.at(date(y, m, d), time(hh, mm))


def make_dealership(db, *, name: str = "Dealer", flush: bool = True, **overrides: Any) -> Dealership:
    d = Dealership(
        id=overrides.pop("id", uuid.uuid4()),
        name=name,
        is_active=overrides.pop("is_active", True),
        **overrides,
    )
    db.add(d)
    if flush:
        db.flush()
    return d


def make_user(db, *, dealership: Dealership | None = None, flush: bool = True, **overrides: Any) -> User:
    u = User(
        id=overrides.pop("id", uuid.uuid4()),
        full_name=overrides.pop("full_name", "Test Employee"),
        dealership_id=dealership.id if dealership is not None else None,
        is_active=overrides.pop("is_active", True),
        **overrides,
    )
    db.add(u)
    if flush:
        db.flush()
    return u


def make_generator(
    db,
    *,
    dealership: Dealership,
    assignees=(),
    recurrence: str = "daily",
    recurrence_time: time | None = time(10, 0),
    deadline_time: time | None = time(18, 0),
    start_date: datetime | None = None,
    flush: bool = True,
    **overrides: Any,
) -> TaskGenerator:
    """
    Generator по умолчанию: daily 10:00 -> 18:00, start 2026-01-01, курсор пуст.
    assignees: User или голые UUID (для сценариев "пропавший пользователь").
    """
    g = TaskGenerator(
        id=overrides.pop("id", uuid.uuid4()),
        dealership_id=dealership.id,
        title=overrides.pop("title", "recurring check"),
        recurrence=recurrence,
        recurrence_time=recurrence_time,
        deadline_time=deadline_time,
        start_date=start_date or local(2026, 1, 1),
        is_active=overrides.pop("is_active", True),
        **overrides,
    )
    for a in assignees:
        g.assignments.append(TaskGeneratorAssignment(user_id=getattr(a, "id", a)))
    db.add(g)
    if flush:
        db.flush()
    return g


def make_task(
    db,
    *,
    dealership: Dealership,
    assignees=(),
    deadline_at: datetime | None = None,
    appear_at: datetime | None = None,
    flush: bool = True,
    **overrides: Any,
) -> Task:
    t = Task(
        id=overrides.pop("id", uuid.uuid4()),
        dealership_id=dealership.id,
        title=overrides.pop("title", "test task"),
        appear_at=appear_at,
        deadline_at=deadline_at,
        is_active=overrides.pop("is_active", True),
        **overrides,
    )
    for u in assignees:
        t.assignments.append(TaskAssignment(user_id=u.id))
    db.add(t)
    if flush:
        db.flush()
    return t


def make_response(
    db,
    *,
    task: Task,
    user: User,
    status: ResponseStatus = ResponseStatus.completed,
    at: datetime,
    flush: bool = True,
    **overrides: Any,
) -> TaskResponse:
    r = TaskResponse(
        id=overrides.pop("id", uuid.uuid4()),
        task_id=task.id,
        user_id=user.id,
        status=status,
        responded_at=at,
        created_at=at,
        **overrides,
    )
    db.add(r)
    if flush:
        db.flush()
    return r


def make_shift(
    db,
    *,
    dealership: Dealership,
    user: User,
    shift_start: datetime,
    shift_end: datetime | None,
    flush: bool = True,
    **overrides: Any,
) -> Shift:
    s = Shift(
        id=overrides.pop("id", uuid.uuid4()),
        dealership_id=dealership.id,
        user_id=user.id,
        shift_start=shift_start,
        shift_end=shift_end,
        status=overrides.pop(
            "status",
            ShiftStatus.closed.value if shift_end is not None else ShiftStatus.open.value,
        ),
        archived_tasks_processed=overrides.pop("archived_tasks_processed", False),
        **overrides,
    )
    db.add(s)
    if flush:
        db.flush()
    return s


def make_setting(
    db,
    key: str,
    value: Any,
    *,
    dealership: Dealership | None = None,
    kind: SettingType = SettingType.integer,
    raw: bool = False,
    flush: bool = True,
) -> DealershipSetting:
    """raw=True пишет value как есть (для битых значений)."""
    row = DealershipSetting(
        dealership_id=dealership.id if dealership is not None else None,
        key=key,
        value=value if raw else encode_value(value, kind),
        type=kind.value,
    )
    db.add(row)
    if flush:
        db.flush()
    return row
