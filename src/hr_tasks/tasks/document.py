"""Task <-> JSON document mapping.

The task store keeps one JSON document per task; these helpers are the only
place that knows the document field names.
"""

from __future__ import annotations

import copy
from typing import Any

from ..common.datetime_utils import parse_iso_datetime, to_iso
from ..core.enums import ChangedByType, Priority, RepeatPattern, Status
from .model import PerUserStatus, StatusHistoryEntry, Task


def task_to_document(task: Task) -> dict[str, Any]:
    return {
        "id": task.task_id,
        "title": task.title,
        "description": task.description,
        "priority": task.priority.value,
        "dueAt": to_iso(task.due_at),
        "directAssignees": list(task.direct_assignees),
        "assignedGroups": list(task.assigned_groups),
        "statusByUser": {
            user_id: {
                "status": entry.status.value,
                "updatedAt": to_iso(entry.updated_at),
                "remarks": entry.remarks,
            }
            for user_id, entry in task.status_by_user.items()
        },
        "statusHistory": [
            {
                "status": h.status.value,
                "changedBy": h.changed_by,
                "changedByType": h.changed_by_type.value,
                "changedAt": to_iso(h.changed_at),
                "remarks": h.remarks,
            }
            for h in task.status_history
        ],
        "overallStatus": task.overall_status.value,
        "completionDate": to_iso(task.completion_date),
        "markedOverdueAt": to_iso(task.marked_overdue_at),
        "overdueReason": task.overdue_reason,
        "overdueNotified": task.overdue_notified,
        "isActive": task.is_active,
        "createdBy": task.created_by,
        "createdAt": to_iso(task.created_at),
        "updatedAt": to_iso(task.updated_at),
        "repeatPattern": task.repeat_pattern.value,
        "repeatDays": list(task.repeat_days),
        "nextOccurrence": to_iso(task.next_occurrence),
        "recurrenceEndDate": to_iso(task.recurrence_end_date),
        "recurrenceCount": task.recurrence_count,
        "parentTaskId": task.parent_task_id,
    }


def task_from_document(doc: dict[str, Any], *, version: int) -> Task:
    return Task(
        task_id=str(doc["id"]),
        title=doc["title"],
        description=doc.get("description") or "",
        priority=Priority(doc.get("priority") or Priority.MEDIUM.value),
        due_at=parse_iso_datetime(doc.get("dueAt")),
        direct_assignees=tuple(doc.get("directAssignees") or ()),
        assigned_groups=tuple(doc.get("assignedGroups") or ()),
        status_by_user={
            str(user_id): PerUserStatus(
                status=Status(entry["status"]),
                updated_at=parse_iso_datetime(entry["updatedAt"]),
                remarks=entry.get("remarks"),
            )
            for user_id, entry in (doc.get("statusByUser") or {}).items()
        },
        status_history=[
            StatusHistoryEntry(
                status=Status(h["status"]),
                changed_by=str(h["changedBy"]),
                changed_by_type=ChangedByType(h["changedByType"]),
                changed_at=parse_iso_datetime(h["changedAt"]),
                remarks=h.get("remarks"),
            )
            for h in (doc.get("statusHistory") or [])
        ],
        overall_status=Status(doc.get("overallStatus") or Status.PENDING.value),
        completion_date=parse_iso_datetime(doc.get("completionDate")),
        marked_overdue_at=parse_iso_datetime(doc.get("markedOverdueAt")),
        overdue_reason=doc.get("overdueReason"),
        overdue_notified=bool(doc.get("overdueNotified", False)),
        is_active=bool(doc.get("isActive", True)),
        created_by=str(doc["createdBy"]),
        created_at=parse_iso_datetime(doc["createdAt"]),
        updated_at=parse_iso_datetime(doc.get("updatedAt") or doc["createdAt"]),
        repeat_pattern=RepeatPattern(doc.get("repeatPattern") or RepeatPattern.NONE.value),
        repeat_days=tuple(doc.get("repeatDays") or ()),
        next_occurrence=parse_iso_datetime(doc.get("nextOccurrence")),
        recurrence_end_date=parse_iso_datetime(doc.get("recurrenceEndDate")),
        recurrence_count=int(doc.get("recurrenceCount") or 0),
        parent_task_id=doc.get("parentTaskId"),
        version=int(version),
    )


def clone_task(task: Task) -> Task:
    """Deep copy used to mutate a task without touching the caller's instance."""
    return copy.deepcopy(task)
