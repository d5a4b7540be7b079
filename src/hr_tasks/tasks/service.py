from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, TypeVar
from uuid import uuid4

from ..common.datetime_utils import ensure_utc, now_utc, to_iso
from ..common.validators import parse_enum, require_non_empty, unique_ids
from ..core.constants import (
    ASSIGNEES_ADDED_REMARK,
    CREATED_REMARK,
    DEFAULT_CONFLICT_RETRIES,
    GENERATED_REMARK,
    OVERDUE_REASON,
    OVERDUE_REMARK,
    SYSTEM_ACTOR,
)
from ..core.enums import (
    OPEN_STATUSES,
    ChangedByType,
    NotificationType,
    Priority,
    RepeatPattern,
    Role,
    Status,
)
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..groups.repository import GroupDirectory
from ..notifications.dispatch import dispatch_notification
from ..notifications.repository import Notifier
from .aggregator import derive_overall_status, resolve_status
from .document import clone_task
from .model import PerUserStatus, Task
from .recurrence import next_occurrence, normalize_repeat_days
from .repository import TaskRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskService:
    """Task lifecycle: creation, self-reported status, overdue marking, edits.

    Every mutation of a stored task runs as read -> mutate a copy -> save. A
    save that loses a version race is retried from a fresh read up to
    `conflict_retries` times, then the ConflictError reaches the caller.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        groups: GroupDirectory,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = now_utc,
        conflict_retries: int = DEFAULT_CONFLICT_RETRIES,
    ):
        self._tasks = tasks
        self._groups = groups
        self._notifier = notifier
        self._clock = clock
        self._conflict_retries = max(0, int(conflict_retries))

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now else self._clock()

    # ---- assignees ----

    def resolve_assignees(self, task: Task) -> frozenset[str]:
        """Direct assignees plus the current members of every assigned group."""
        members = set(task.direct_assignees)
        for gid in task.assigned_groups:
            try:
                members |= self._groups.resolve_group_members(gid)
            except NotFoundError:
                logger.warning("Group %s of task %s no longer resolves; ignoring its members", gid, task.task_id)
        return frozenset(members)

    def _validate_groups(self, group_ids: Iterable[str], owner_id: str) -> set[str]:
        members: set[str] = set()
        for gid in group_ids:
            group = self._groups.get_group(gid)
            if group is None or not group.usable_by(owner_id):
                raise ValidationError(f"Group {gid} does not exist or cannot be used")
            members |= group.members
        return members

    @staticmethod
    def _require_privileged(role, action: str) -> Role:
        r = parse_enum(Role, role, "role")
        if not r.is_privileged:
            raise AuthorizationError(f"Only admin, manager or hr users can {action}")
        return r

    # ---- aggregate ----

    @staticmethod
    def _end_overdue_episode(task: Task) -> None:
        task.marked_overdue_at = None
        task.overdue_reason = None
        task.overdue_notified = False

    def _apply_overall(self, task: Task, assignees: Iterable[str], now: datetime) -> Status:
        overall = derive_overall_status(
            assignees,
            task.status_by_user,
            overdue_episode_active=task.overdue_episode_active,
        )
        if task.overdue_episode_active and overall != Status.OVERDUE:
            self._end_overdue_episode(task)

        if overall == Status.COMPLETED:
            if task.completion_date is None:
                task.completion_date = now
        else:
            task.completion_date = None

        task.overall_status = overall
        return overall

    # ---- persistence ----

    def _load_active(self, task_id: str) -> Task:
        task = self._tasks.find_by_id(str(task_id))
        if task is None or not task.is_active:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def _mutate(self, task_id: str, apply: Callable[[Task], T]) -> tuple[Task, T]:
        attempt = 0
        while True:
            task = clone_task(self._load_active(task_id))
            result = apply(task)
            try:
                self._tasks.save(task)
                return task, result
            except ConflictError:
                if attempt >= self._conflict_retries:
                    logger.warning("Giving up on task %s after %s conflicting saves", task_id, attempt + 1)
                    raise
                attempt += 1
                logger.info("Task %s changed underneath us; retrying (%s/%s)", task_id, attempt, self._conflict_retries)

    def _notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType,
        task: Task,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        return dispatch_notification(
            self._notifier,
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            related_task_id=task.task_id,
            metadata=metadata,
        )

    def _notify_assigned(self, task: Task, user_ids: Iterable[str]) -> None:
        for uid in sorted(set(user_ids)):
            if uid == task.created_by:
                continue
            self._notify(
                uid,
                "New Task Assigned",
                f'You have been assigned to task "{task.title}".',
                NotificationType.TASK_ASSIGNED,
                task,
                {"dueDate": to_iso(task.due_at), "priority": task.priority.value},
            )

    # ---- operations ----

    def create_task(
        self,
        title: str,
        due_at: Optional[datetime],
        priority,
        direct_assignees: Iterable[str],
        assigned_groups: Iterable[str],
        created_by: str,
        *,
        description: str = "",
        creator_role=None,
        repeat_pattern=RepeatPattern.NONE,
        repeat_days: Iterable[str] = (),
        recurrence_end_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Task:
        now = self._now(now)
        title = require_non_empty(title, "title")
        created_by = require_non_empty(created_by, "created_by")
        priority = parse_enum(Priority, priority or Priority.MEDIUM, "priority")

        due_at = ensure_utc(due_at) if due_at else None
        if due_at is not None and due_at < now:
            raise ValidationError("due_at cannot be in the past")

        direct = unique_ids(direct_assignees, "direct_assignees")
        groups = unique_ids(assigned_groups, "assigned_groups")

        if creator_role is not None:
            role = parse_enum(Role, creator_role, "role")
            if not role.is_privileged and (groups or any(u != created_by for u in direct)):
                raise AuthorizationError("Only admin, manager or hr users can assign tasks to others")

        group_members = self._validate_groups(groups, created_by)

        pattern = parse_enum(RepeatPattern, repeat_pattern or RepeatPattern.NONE, "repeat_pattern")
        days = normalize_repeat_days(repeat_days) if pattern == RepeatPattern.WEEKLY else ()
        end_date = ensure_utc(recurrence_end_date) if recurrence_end_date else None
        following = None
        if pattern != RepeatPattern.NONE:
            if due_at is None:
                raise ValidationError("Recurring tasks need a due date")
            if end_date is not None and end_date < due_at:
                raise ValidationError("recurrence_end_date must not be before due_at")
            following = next_occurrence(due_at, pattern, days)
            if end_date is not None and following is not None and following > end_date:
                following = None
        elif end_date is not None:
            raise ValidationError("recurrence_end_date requires a repeat pattern")

        assignees = list(direct) + sorted(group_members - set(direct))

        task = Task(
            task_id=uuid4().hex,
            title=title,
            description=(description or "").strip(),
            priority=priority,
            due_at=due_at,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            direct_assignees=direct,
            assigned_groups=groups,
            status_by_user={u: PerUserStatus(status=Status.PENDING, updated_at=now) for u in assignees},
            repeat_pattern=pattern,
            repeat_days=days,
            next_occurrence=following,
            recurrence_end_date=end_date,
        )
        task.overall_status = derive_overall_status(assignees, task.status_by_user)
        task.append_history(
            status=Status.PENDING,
            changed_by=created_by,
            changed_by_type=ChangedByType.USER,
            changed_at=now,
            remarks=CREATED_REMARK,
        )

        self._tasks.insert(task)
        logger.info(
            "Task %s created by %s with %s assignee(s), %s group(s)%s",
            task.task_id,
            created_by,
            len(assignees),
            len(groups),
            f", repeats {pattern.value}" if task.is_recurring else "",
        )

        self._notify_assigned(task, assignees)
        return task

    def report_status(
        self,
        task_id: str,
        acting_user_id: str,
        new_status,
        remarks: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Task:
        now = self._now(now)
        actor = str(acting_user_id or "").strip()
        note = (remarks or "").strip() or None

        def apply(task: Task) -> Status:
            assignees = self.resolve_assignees(task)
            if actor not in assignees:
                raise AuthorizationError("You are not assigned to this task")
            status = parse_enum(Status, new_status, "status")

            previous = task.overall_status
            left_overdue = resolve_status(actor, task.status_by_user) == Status.OVERDUE and status != Status.OVERDUE

            current = task.status_by_user.get(actor)
            task.status_by_user[actor] = PerUserStatus(
                status=status,
                updated_at=now,
                remarks=note if note is not None else (current.remarks if current else None),
            )
            task.append_history(
                status=status,
                changed_by=actor,
                changed_by_type=ChangedByType.USER,
                changed_at=now,
                remarks=note,
            )
            if left_overdue:
                self._end_overdue_episode(task)

            self._apply_overall(task, assignees, now)
            task.updated_at = now
            return previous

        task, previous = self._mutate(task_id, apply)
        reported = task.status_by_user[actor].status
        logger.info(
            "Task %s: %s reported %s (overall %s -> %s)",
            task.task_id,
            actor,
            reported.value,
            previous.value,
            task.overall_status.value,
        )

        if actor != task.created_by:
            if task.overall_status == Status.COMPLETED and previous != Status.COMPLETED:
                self._notify(
                    task.created_by,
                    "Task Completed",
                    f'All assignees have completed task "{task.title}".',
                    NotificationType.TASK_COMPLETED,
                    task,
                    {"completedAt": to_iso(task.completion_date)},
                )
            else:
                self._notify(
                    task.created_by,
                    "Task Status Updated",
                    f'{actor} changed their status on "{task.title}" to {reported.value}.',
                    NotificationType.STATUS_UPDATED,
                    task,
                    {"status": reported.value, "overallStatus": task.overall_status.value, "updatedBy": actor},
                )
        return task

    def check_and_mark_overdue(self, task: Task, now: datetime) -> bool:
        """Force every open per-user status of a past-due task to overdue.

        Mutates `task` in place and does not persist it. Closed statuses are
        never touched. Returns False (and changes nothing) when no entry was
        open, so repeated calls are harmless.
        """
        now = ensure_utc(now)
        if not task.is_active or task.due_at is None or task.due_at >= now:
            return False

        transitioned = []
        for uid in sorted(self.resolve_assignees(task)):
            if resolve_status(uid, task.status_by_user) in OPEN_STATUSES:
                task.status_by_user[uid] = PerUserStatus(status=Status.OVERDUE, updated_at=now, remarks=OVERDUE_REMARK)
                transitioned.append(uid)

        if not transitioned:
            return False

        task.overall_status = Status.OVERDUE
        task.completion_date = None
        if task.marked_overdue_at is None:
            task.marked_overdue_at = now
            task.overdue_reason = OVERDUE_REASON
            task.overdue_notified = False
        task.append_history(
            status=Status.OVERDUE,
            changed_by=SYSTEM_ACTOR,
            changed_by_type=ChangedByType.SYSTEM,
            changed_at=now,
            remarks=OVERDUE_REMARK,
        )
        task.updated_at = now
        logger.info("Task %s marked overdue for %s assignee(s)", task.task_id, len(transitioned))
        return True

    def update_task(
        self,
        task_id: str,
        *,
        editor_id: str,
        editor_role,
        title: Optional[str] = None,
        description: Optional[str] = None,
        priority=None,
        due_at: Optional[datetime] = None,
        clear_due_at: bool = False,
        now: Optional[datetime] = None,
    ) -> Task:
        """Edit metadata only. Statuses and history are left alone."""
        self._require_privileged(editor_role, "edit tasks")
        now = self._now(now)

        new_title = require_non_empty(title, "title") if title is not None else None
        new_priority = parse_enum(Priority, priority, "priority") if priority is not None else None
        new_due = ensure_utc(due_at) if due_at is not None else None
        if new_due is not None and new_due < now:
            raise ValidationError("due_at cannot be in the past")

        def apply(task: Task) -> None:
            if new_title is not None:
                task.title = new_title
            if description is not None:
                task.description = description.strip()
            if new_priority is not None:
                task.priority = new_priority
            if clear_due_at:
                task.due_at = None
            elif new_due is not None:
                task.due_at = new_due
            task.updated_at = now

        task, _ = self._mutate(task_id, apply)
        logger.info("Task %s updated by %s", task.task_id, editor_id)
        return task

    def add_assignees(
        self,
        task_id: str,
        *,
        editor_id: str,
        editor_role,
        user_ids: Iterable[str] = (),
        group_ids: Iterable[str] = (),
        now: Optional[datetime] = None,
    ) -> Task:
        self._require_privileged(editor_role, "add assignees")
        now = self._now(now)
        editor = require_non_empty(editor_id, "editor_id")
        users = unique_ids(user_ids, "user_ids")
        groups = unique_ids(group_ids, "group_ids")
        if not users and not groups:
            raise ValidationError("Nothing to add")
        self._validate_groups(groups, editor)

        def apply(task: Task) -> list[str]:
            before = self.resolve_assignees(task)
            task.direct_assignees = task.direct_assignees + tuple(u for u in users if u not in task.direct_assignees)
            task.assigned_groups = task.assigned_groups + tuple(g for g in groups if g not in task.assigned_groups)

            assignees = self.resolve_assignees(task)
            added = sorted(assignees - before)
            for uid in added:
                if uid not in task.status_by_user:
                    task.status_by_user[uid] = PerUserStatus(status=Status.PENDING, updated_at=now)

            overall = self._apply_overall(task, assignees, now)
            task.append_history(
                status=overall,
                changed_by=editor,
                changed_by_type=ChangedByType.USER,
                changed_at=now,
                remarks=ASSIGNEES_ADDED_REMARK,
            )
            task.updated_at = now
            return added

        task, added = self._mutate(task_id, apply)
        logger.info("Task %s: %s added %s assignee(s)", task.task_id, editor, len(added))
        self._notify_assigned(task, added)
        return task

    def deactivate_task(self, task_id: str, *, editor_id: str, editor_role, now: Optional[datetime] = None) -> Task:
        self._require_privileged(editor_role, "delete tasks")
        now = self._now(now)

        existing = self._tasks.find_by_id(str(task_id))
        if existing is None:
            raise NotFoundError(f"Task {task_id} not found")
        if not existing.is_active:
            return existing

        def apply(task: Task) -> None:
            task.is_active = False
            task.updated_at = now

        task, _ = self._mutate(task_id, apply)
        logger.info("Task %s deactivated by %s", task.task_id, editor_id)
        return task

    def spawn_occurrence(self, template: Task, *, due_at: datetime, now: Optional[datetime] = None) -> Task:
        """Create the plain task for one occurrence of a recurring task."""
        now = self._now(now)
        assignees = sorted(self.resolve_assignees(template))

        child = Task(
            task_id=uuid4().hex,
            title=template.title,
            description=template.description,
            priority=template.priority,
            due_at=ensure_utc(due_at),
            created_by=template.created_by,
            created_at=now,
            updated_at=now,
            direct_assignees=template.direct_assignees,
            assigned_groups=template.assigned_groups,
            status_by_user={u: PerUserStatus(status=Status.PENDING, updated_at=now) for u in assignees},
            parent_task_id=template.task_id,
        )
        child.overall_status = derive_overall_status(assignees, child.status_by_user)
        child.append_history(
            status=Status.PENDING,
            changed_by=SYSTEM_ACTOR,
            changed_by_type=ChangedByType.SYSTEM,
            changed_at=now,
            remarks=GENERATED_REMARK,
        )
        self._tasks.insert(child)
        self._notify_assigned(child, assignees)
        return child

    # ---- queries ----

    def get_task(self, task_id: str) -> Task:
        return self._load_active(task_id)

    def list_tasks_for_user(self, user_id: str) -> list[Task]:
        user_id = require_non_empty(user_id, "user_id")
        group_ids = list(self._groups.list_groups_for_member(user_id))
        return list(self._tasks.find_for_assignee(user_id, group_ids))

    def list_tasks_created_by(self, user_id: str) -> list[Task]:
        user_id = require_non_empty(user_id, "user_id")
        return list(self._tasks.find_created_by(user_id))

    def list_recurring_tasks(self, user_id: str) -> list[Task]:
        """Recurring templates the user created, soonest next occurrence first."""
        user_id = require_non_empty(user_id, "user_id")
        return list(self._tasks.find_created_by(user_id, recurring_only=True))

    def list_self_assigned_tasks(self, user_id: str, *, viewer_role) -> list[Task]:
        """Tasks a user created for themself; visible to admin, manager and hr."""
        self._require_privileged(viewer_role, "view other users' tasks")
        user_id = require_non_empty(user_id, "user_id")
        return [t for t in self._tasks.find_created_by(user_id) if user_id in t.direct_assignees]

    def get_status_counts(self, user_id: str) -> dict[str, int]:
        """How many of the user's tasks sit in each of their own statuses."""
        counts = {s.value: 0 for s in Status}
        for task in self.list_tasks_for_user(user_id):
            counts[resolve_status(user_id, task.status_by_user).value] += 1
        return counts

    def list_overdue_tasks(self, user_id: str, *, now: Optional[datetime] = None) -> list[Task]:
        now = self._now(now)
        out = []
        for task in self.list_tasks_for_user(user_id):
            own = resolve_status(user_id, task.status_by_user)
            if own == Status.OVERDUE:
                out.append(task)
            elif own in OPEN_STATUSES and task.due_at is not None and task.due_at < now:
                out.append(task)
        return out
