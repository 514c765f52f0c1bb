# tests/test_task_status_service.py
from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from shiftops.models.task import ArchiveReason, TaskStatus
from shiftops.models.task_response import ResponseStatus
from shiftops.services.task_status_service import TaskStatusService

from tests.factories import local, make_dealership, make_generator, make_response, make_task, make_user

NOW = local(2026, 3, 6, 12, 0)


def test_resolve_many(db):
    dealer = make_dealership(db)
    user = make_user(db)
    pending = make_task(db, dealership=dealer, assignees=[user], deadline_at=NOW + timedelta(hours=1))
    overdue = make_task(db, dealership=dealer, assignees=[user], deadline_at=NOW - timedelta(hours=1))
    acked = make_task(db, dealership=dealer, assignees=[user], deadline_at=NOW + timedelta(hours=1))
    make_response(db, task=acked, user=user, status=ResponseStatus.acknowledged, at=NOW - timedelta(minutes=5))
    db.commit()

    statuses = TaskStatusService(db).resolve_many([pending.id, overdue.id, acked.id], NOW)

    assert statuses == {
        pending.id: TaskStatus.pending,
        overdue.id: TaskStatus.overdue,
        acked.id: TaskStatus.acknowledged,
    }
    assert TaskStatusService(db).resolve_many([], NOW) == {}


def test_resolve_unknown_task(db):
    with pytest.raises(LookupError):
        TaskStatusService(db).resolve(uuid.uuid4(), NOW)


def test_read_projection(db):
    dealer = make_dealership(db)
    users = [make_user(db), make_user(db)]
    task = make_task(db, dealership=dealer, assignees=users, deadline_at=NOW + timedelta(hours=2), title="open floor")
    make_response(db, task=task, user=users[0], at=NOW - timedelta(minutes=10))
    db.commit()

    read = TaskStatusService(db).read(task.id, NOW)

    assert read.id == task.id
    assert read.title == "open floor"
    assert read.status == TaskStatus.pending
    assert read.progress.total_assignees == 2
    assert read.progress.completed_count == 1
    assert read.progress.pending_count == 1
    assert read.progress.percentage == 50


def test_generator_stats(db):
    dealer = make_dealership(db)
    user = make_user(db)
    gen = make_generator(db, dealership=dealer, assignees=[user])

    def _t(period, **kw):
        return make_task(db, dealership=dealer, assignees=[user], generator_id=gen.id, generation_period=period, **kw)

    _t("2026-03-01", is_active=False, archived_at=NOW, archive_reason=ArchiveReason.completed)
    _t("2026-03-02", is_active=False, archived_at=NOW, archive_reason=ArchiveReason.expired)
    _t("2026-03-03", is_active=False, archived_at=NOW, archive_reason=ArchiveReason.expired_after_shift)
    done = _t("2026-03-04", deadline_at=NOW - timedelta(days=1))
    make_response(db, task=done, user=user, at=NOW - timedelta(days=2))
    _t("2026-03-05", deadline_at=NOW - timedelta(hours=1))  # overdue
    _t("2026-03-06", deadline_at=NOW + timedelta(hours=6))  # pending
    make_task(db, dealership=dealer, assignees=[user])  # ручная, не от генератора
    db.commit()

    stats = TaskStatusService(db).generator_stats(gen.id, NOW)

    assert stats.generator_id == gen.id
    assert stats.total_generated == 6
    assert stats.completed_count == 2
    assert stats.expired_count == 3
