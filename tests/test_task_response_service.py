# tests/test_task_response_service.py
from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from shiftops.models.task import ArchiveReason, TaskStatus
from shiftops.models.task_response import ResponseStatus, TaskResponse
from shiftops.services.task_archive_service import TaskAlreadyArchived
from shiftops.services.task_response_service import (
    InvalidResponseStatus,
    NotAssigned,
    TaskResponseService,
)
from shiftops.services.task_status_service import TaskStatusService

from tests.factories import local, make_dealership, make_task, make_user

DEADLINE = local(2026, 3, 6, 18, 0)


@pytest.fixture()
def task_with_team(db):
    dealer = make_dealership(db)
    team = [make_user(db, dealership=dealer) for _ in range(3)]
    task = make_task(db, dealership=dealer, assignees=team, deadline_at=DEADLINE)
    return task, team


def test_record_upserts_one_row_per_user(db, task_with_team):
    task, team = task_with_team
    svc = TaskResponseService(db)

    first = svc.record(task.id, team[0].id, "acknowledged", at=DEADLINE - timedelta(hours=5))
    second = svc.record(
        task.id, team[0].id, ResponseStatus.completed, at=DEADLINE - timedelta(hours=1), comment="done"
    )

    assert first.id == second.id
    assert second.status == ResponseStatus.completed
    assert second.responded_at == DEADLINE - timedelta(hours=1)
    assert second.comment == "done"
    assert db.scalar(select(func.count()).select_from(TaskResponse)) == 1


@pytest.mark.parametrize("status", [TaskStatus.completed_late, TaskStatus.overdue, "overdue", "done"])
def test_derived_or_unknown_status_is_rejected(db, task_with_team, status):
    task, team = task_with_team
    with pytest.raises(InvalidResponseStatus):
        TaskResponseService(db).record(task.id, team[0].id, status, at=DEADLINE)
    assert db.scalar(select(func.count()).select_from(TaskResponse)) == 0


def test_unassigned_user_cannot_respond(db, task_with_team):
    task, _ = task_with_team
    stranger = make_user(db)
    with pytest.raises(NotAssigned):
        TaskResponseService(db).record(task.id, stranger.id, "completed", at=DEADLINE)


def test_unknown_task_is_lookup_error(db):
    user = make_user(db)
    with pytest.raises(LookupError):
        TaskResponseService(db).record(uuid.uuid4(), user.id, "completed", at=DEADLINE)


def test_archived_task_rejects_responses(db):
    dealer = make_dealership(db)
    user = make_user(db)
    task = make_task(
        db,
        dealership=dealer,
        assignees=[user],
        is_active=False,
        archived_at=DEADLINE,
        archive_reason=ArchiveReason.expired,
    )
    with pytest.raises(TaskAlreadyArchived):
        TaskResponseService(db).record(task.id, user.id, "completed", at=DEADLINE)


def test_late_completion_is_derived_and_stored_status_stays_completed(db, task_with_team):
    task, team = task_with_team
    svc = TaskResponseService(db)

    svc.record(task.id, team[0].id, "completed", at=DEADLINE - timedelta(hours=2))
    svc.record(task.id, team[1].id, "completed", at=DEADLINE - timedelta(hours=1))
    svc.record(task.id, team[2].id, "completed", at=DEADLINE + timedelta(minutes=30))
    db.commit()

    status = TaskStatusService(db).resolve(task.id, DEADLINE + timedelta(hours=1))
    assert status == TaskStatus.completed_late

    db.expire_all()
    stored = db.scalars(select(TaskResponse.status).where(TaskResponse.task_id == task.id)).all()
    assert stored == [ResponseStatus.completed] * 3


def test_group_progress_two_completed_one_review(db, task_with_team):
    task, team = task_with_team
    svc = TaskResponseService(db)
    svc.record(task.id, team[0].id, "completed", at=DEADLINE - timedelta(hours=2))
    svc.record(task.id, team[1].id, "completed", at=DEADLINE - timedelta(hours=2))
    svc.record(task.id, team[2].id, "pending_review", at=DEADLINE - timedelta(hours=2))
    db.commit()

    read = TaskStatusService(db).read(task.id, DEADLINE - timedelta(hours=1))
    assert read.status == TaskStatus.pending_review
    assert read.progress.completed_count == 2
    assert read.progress.pending_review_count == 1
    assert read.progress.percentage == 67
