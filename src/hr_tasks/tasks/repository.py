from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import OPEN_STATUSES, Status
from .model import Task


def count_open_entries(task: Task) -> int:
    return sum(1 for e in task.status_by_user.values() if e.status in OPEN_STATUSES)


def is_overdue_candidate(task: Task, now: datetime) -> bool:
    """Filter shared by every TaskRepository implementation.

    Group-assigned tasks always qualify once past due: members without an
    entry are implicitly pending and only the engine can expand groups.
    """
    if not task.is_active or task.due_at is None or task.due_at >= now:
        return False
    if task.overall_status in OPEN_STATUSES or count_open_entries(task) > 0 or task.assigned_groups:
        return True
    return task.overall_status == Status.OVERDUE and not task.overdue_notified


def is_recurring_due(task: Task, horizon: datetime) -> bool:
    if not task.is_active or not task.is_recurring or task.next_occurrence is None:
        return False
    if task.next_occurrence > horizon:
        return False
    return task.recurrence_end_date is None or task.recurrence_end_date >= task.next_occurrence


class TaskRepository(Protocol):
    """Repository interface for task documents.

    Note (DIP): the task services depend on this interface, not on a concrete DB.
    """

    def find_by_id(self, task_id: str) -> Optional[Task]:
        """Return the task (active or not) or None."""

        raise NotImplementedError

    def find_active_overdue_candidates(self, now: datetime) -> Iterable[Task]:
        """Active tasks past due whose aggregate or any per-user status is open,
        plus overdue tasks whose notification fan-out has not succeeded yet."""

        raise NotImplementedError

    def find_for_assignee(self, user_id: str, group_ids: Sequence[str]) -> Sequence[Task]:
        """Active tasks naming the user directly or assigned to any of the groups."""

        raise NotImplementedError

    def find_created_by(self, user_id: str, *, recurring_only: bool = False) -> Sequence[Task]:
        """Active tasks created by the user, newest first; recurring templates
        only (ordered by next occurrence) when `recurring_only` is set."""

        raise NotImplementedError

    def find_recurring_due(self, horizon: datetime) -> Iterable[Task]:
        """Active recurring tasks whose next occurrence is at or before `horizon`
        and not past their recurrence end date."""

        raise NotImplementedError

    def insert(self, task: Task) -> None:
        """Persist a new task; sets task.version to 1."""

        raise NotImplementedError

    def save(self, task: Task) -> None:
        """Replace the stored document if its version still equals task.version.

        Raises ConflictError when another writer saved first; on success
        task.version is incremented.
        """

        raise NotImplementedError
