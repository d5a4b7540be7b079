from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.enums import ChangedByType, Priority, RepeatPattern, Status


@dataclass(frozen=True)
class PerUserStatus:
    """One assignee's private progress marker on a shared task."""

    status: Status
    updated_at: datetime
    remarks: Optional[str] = None


@dataclass(frozen=True)
class StatusHistoryEntry:
    """Audit record of one status-affecting event (append-only)."""

    status: Status
    changed_by: str
    changed_by_type: ChangedByType
    changed_at: datetime
    remarks: Optional[str] = None


@dataclass
class Task:
    """Domain entity: Task.

    Note: This is a plain data object (no DB access). The lifecycle rules live
    in TaskService; the overall status is derived by the aggregator.
    """

    task_id: str
    title: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    priority: Priority = Priority.MEDIUM
    due_at: Optional[datetime] = None

    direct_assignees: tuple[str, ...] = ()
    assigned_groups: tuple[str, ...] = ()
    status_by_user: dict[str, PerUserStatus] = field(default_factory=dict)
    status_history: list[StatusHistoryEntry] = field(default_factory=list)

    overall_status: Status = Status.PENDING
    completion_date: Optional[datetime] = None

    marked_overdue_at: Optional[datetime] = None
    overdue_reason: Optional[str] = None
    overdue_notified: bool = False

    is_active: bool = True

    repeat_pattern: RepeatPattern = RepeatPattern.NONE
    repeat_days: tuple[str, ...] = ()
    next_occurrence: Optional[datetime] = None
    recurrence_end_date: Optional[datetime] = None
    recurrence_count: int = 0
    parent_task_id: Optional[str] = None

    # 0 = never persisted; the store bumps it on every successful save.
    version: int = 0

    @property
    def is_recurring(self) -> bool:
        return self.repeat_pattern != RepeatPattern.NONE

    @property
    def overdue_episode_active(self) -> bool:
        return self.marked_overdue_at is not None

    def append_history(
        self,
        *,
        status: Status,
        changed_by: str,
        changed_by_type: ChangedByType,
        changed_at: datetime,
        remarks: Optional[str] = None,
    ) -> None:
        self.status_history.append(
            StatusHistoryEntry(
                status=status,
                changed_by=changed_by,
                changed_by_type=changed_by_type,
                changed_at=changed_at,
                remarks=remarks,
            )
        )
