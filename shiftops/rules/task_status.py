# shiftops/rules/task_status.py

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from shiftops.models.task import TaskStatus
from shiftops.models.task_response import ResponseStatus
from shiftops.schemas.task import CompletionProgress

"""Task status resolver: агрегатный статус задачи из ответов исполнителей.

Правило одно и то же для individual и group: каждый назначенный должен
сам дойти до completed. Результат: TaskStatus (вычисляемый), в ответы
он никогда не пишется.

  1. у каждого назначенного берём ПОСЛЕДНИЙ ответ (нет ответа = pending)
  2. все completed -> completed / completed_late (хоть один после дедлайна)
  3. хоть один pending_review -> pending_review
  4. дедлайн прошёл -> overdue
  5. хоть один acknowledged -> acknowledged
  6. иначе pending
"""


class ResponseLike(Protocol):
    user_id: UUID
    status: Any
    responded_at: datetime | None
    created_at: datetime | None


def response_time(response: ResponseLike) -> datetime | None:
    return response.responded_at or response.created_at


def stored_status(value: Any) -> ResponseStatus:
    """Coerce to the stored variant; derived labels raise ValueError."""
    if isinstance(value, ResponseStatus):
        return value
    if isinstance(value, TaskStatus):
        raise ValueError(f"derived task status {value.value!r} is not a response status")
    return ResponseStatus(value)


def latest_responses(
    assignee_ids: Iterable[UUID],
    responses: Sequence[ResponseLike],
) -> dict[UUID, ResponseLike | None]:
    """Latest response per assignee by time; ties go to the later-inserted one.

    Responses of users who are not assigned are ignored.
    """
    latest: dict[UUID, ResponseLike | None] = {uid: None for uid in assignee_ids}
    best_key: dict[UUID, tuple] = {}

    for idx, r in enumerate(responses):
        if r.user_id not in latest:
            continue
        t = response_time(r)
        # None sorts before any real timestamp
        key = (t is not None, t.timestamp() if t is not None else 0.0, idx)
        if r.user_id not in best_key or key > best_key[r.user_id]:
            best_key[r.user_id] = key
            latest[r.user_id] = r

    return latest


def _latest_statuses(latest: dict[UUID, ResponseLike | None]) -> dict[UUID, ResponseStatus]:
    return {
        uid: (stored_status(r.status) if r is not None else ResponseStatus.pending)
        for uid, r in latest.items()
    }


def resolve_status(
    *,
    deadline_at: datetime | None,
    assignee_ids: Iterable[UUID],
    responses: Sequence[ResponseLike],
    now: datetime,
) -> TaskStatus:
    latest = latest_responses(assignee_ids, responses)
    statuses = _latest_statuses(latest)
    values = set(statuses.values())

    if statuses and values == {ResponseStatus.completed}:
        if deadline_at is not None:
            for r in latest.values():
                t = response_time(r)
                if t is not None and t > deadline_at:
                    return TaskStatus.completed_late
        return TaskStatus.completed

    if ResponseStatus.pending_review in values:
        return TaskStatus.pending_review

    if deadline_at is not None and now > deadline_at:
        return TaskStatus.overdue

    if ResponseStatus.acknowledged in values:
        return TaskStatus.acknowledged

    return TaskStatus.pending


def resolve_task_status(task, now: datetime) -> TaskStatus:
    """Same as resolve_status for a loaded Task (assignments + responses)."""
    return resolve_status(
        deadline_at=task.deadline_at,
        assignee_ids=[a.user_id for a in task.assignments],
        responses=list(task.responses),
        now=now,
    )


def completion_time(task) -> datetime | None:
    """When the task became fully completed (latest completing response)."""
    latest = latest_responses([a.user_id for a in task.assignments], list(task.responses))
    times = [response_time(r) for r in latest.values() if r is not None]
    if not times or any(t is None for t in times):
        return None
    return max(times)


def completion_progress(task) -> CompletionProgress:
    latest = latest_responses([a.user_id for a in task.assignments], list(task.responses))
    statuses = list(_latest_statuses(latest).values())

    total = len(statuses)
    completed = statuses.count(ResponseStatus.completed)
    pending_review = statuses.count(ResponseStatus.pending_review)
    rejected = statuses.count(ResponseStatus.rejected)

    return CompletionProgress(
        total_assignees=total,
        completed_count=completed,
        pending_review_count=pending_review,
        rejected_count=rejected,
        pending_count=total - completed - pending_review - rejected,
        percentage=round(completed * 100 / total) if total else 0,
    )
