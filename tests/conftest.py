from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import pytest

from hr_tasks.container import wire_services
from hr_tasks.core.exceptions import ConflictError, NotFoundError
from hr_tasks.groups.model import Group
from hr_tasks.notifications.model import Notification
from hr_tasks.tasks.document import clone_task
from hr_tasks.tasks.model import Task
from hr_tasks.tasks.repository import is_overdue_candidate, is_recurring_due

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeTaskRepo:
    """In-memory task store with the same version check as the MySQL one.

    `concurrent_writes` holds callables applied to the stored copy right
    before a save is checked, simulating another writer winning the race.
    """

    def __init__(self):
        self._docs: dict[str, Task] = {}
        self.concurrent_writes: list[Callable[[Task], None]] = []
        self.failing_ids: set[str] = set()
        self.save_calls = 0

    def get(self, task_id):
        return self._docs[task_id]

    def find_by_id(self, task_id):
        t = self._docs.get(str(task_id))
        return clone_task(t) if t else None

    def find_active_overdue_candidates(self, now):
        return [clone_task(t) for t in self._docs.values() if is_overdue_candidate(t, now)]

    def find_for_assignee(self, user_id, group_ids):
        groups = set(group_ids)
        out = [
            clone_task(t)
            for t in self._docs.values()
            if t.is_active and (user_id in t.direct_assignees or groups.intersection(t.assigned_groups))
        ]
        return sorted(out, key=lambda t: t.created_at, reverse=True)

    def find_created_by(self, user_id, *, recurring_only=False):
        out = [
            clone_task(t)
            for t in self._docs.values()
            if t.is_active and t.created_by == user_id and (t.is_recurring or not recurring_only)
        ]
        if recurring_only:
            return sorted(out, key=lambda t: (t.next_occurrence is None, t.next_occurrence or t.created_at))
        return sorted(out, key=lambda t: t.created_at, reverse=True)

    def find_recurring_due(self, horizon):
        due = [clone_task(t) for t in self._docs.values() if is_recurring_due(t, horizon)]
        return sorted(due, key=lambda t: t.next_occurrence)

    def insert(self, task):
        task.version = 1
        self._docs[task.task_id] = clone_task(task)

    def save(self, task):
        self.save_calls += 1
        if task.task_id in self.failing_ids:
            raise RuntimeError("disk full")

        stored = self._docs.get(task.task_id)
        if stored is None:
            raise ConflictError(f"Task {task.task_id} was never inserted")

        if self.concurrent_writes:
            self.concurrent_writes.pop(0)(stored)
            stored.version += 1

        if stored.version != task.version:
            raise ConflictError(f"Task {task.task_id} was modified concurrently")
        task.version += 1
        self._docs[task.task_id] = clone_task(task)


class FakeGroupDirectory:
    def __init__(self):
        self._groups: dict[str, Group] = {}

    def add(self, group_id, *, members, created_by="mgr", is_active=True, name=None):
        self._groups[group_id] = Group(
            group_id=group_id,
            name=name or group_id,
            created_by=created_by,
            members=frozenset(members),
            is_active=is_active,
        )

    def get_group(self, group_id):
        return self._groups.get(group_id)

    def resolve_group_members(self, group_id):
        g = self._groups.get(group_id)
        if g is None or not g.is_active:
            raise NotFoundError(f"Group {group_id} not found")
        return g.members

    def list_groups_for_member(self, user_id):
        return sorted(gid for gid, g in self._groups.items() if g.is_active and user_id in g.members)


class FakeNotifier:
    def __init__(self):
        self.sent: list[Notification] = []
        self.fail_for: set[str] = set()
        self.fail_all = False

    def notify(self, user_id, title, message, type, related_task_id=None, metadata=None):
        if self.fail_all or user_id in self.fail_for:
            raise RuntimeError("notification backend unavailable")
        self.sent.append(
            Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=type,
                related_task_id=related_task_id,
                metadata=dict(metadata or {}),
            )
        )

    def to(self, user_id):
        return [n for n in self.sent if n.user_id == user_id]


@pytest.fixture
def now():
    return T0


@pytest.fixture
def tasks_repo():
    return FakeTaskRepo()


@pytest.fixture
def groups():
    return FakeGroupDirectory()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def container(tasks_repo, groups, notifier, now):
    return wire_services(
        tasks_repo=tasks_repo,
        groups_repo=groups,
        notifier=notifier,
        clock=lambda: now,
        conflict_retries=1,
    )


@pytest.fixture
def service(container):
    return container.task_service


@pytest.fixture
def scanner(container):
    return container.overdue_scanner
