from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..common.datetime_utils import ensure_utc, now_utc, to_iso
from ..core.constants import DEFAULT_CONFLICT_RETRIES
from ..core.enums import NotificationType, Status
from ..core.exceptions import ConflictError
from ..notifications.dispatch import dispatch_notification
from ..notifications.repository import Notifier
from .aggregator import resolve_status
from .model import Task
from .repository import TaskRepository
from .service import TaskService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    updated_count: int
    already_overdue_count: int
    skipped_count: int
    total_checked: int
    notifications_sent: int = 0


class OverdueScanner:
    """Batch entry point run by the external scheduler (see `flask scan-overdue`).

    Each candidate is handled on its own: a failure is logged with the task id,
    counted as skipped, and the scan moves on.
    """

    def __init__(
        self,
        service: TaskService,
        tasks: TaskRepository,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = now_utc,
        conflict_retries: int = DEFAULT_CONFLICT_RETRIES,
    ):
        self._service = service
        self._tasks = tasks
        self._notifier = notifier
        self._clock = clock
        self._conflict_retries = max(0, int(conflict_retries))

    def scan_and_mark_overdue(self, now: Optional[datetime] = None) -> ScanResult:
        now = ensure_utc(now) if now else self._clock()
        candidates = list(self._tasks.find_active_overdue_candidates(now))

        updated = 0
        already = 0
        skipped = 0
        sent = 0
        for task in candidates:
            try:
                modified, notified = self._process(task, now)
            except Exception:
                logger.exception("Overdue scan failed for task %s", task.task_id)
                skipped += 1
                continue
            if modified:
                updated += 1
            else:
                already += 1
            sent += notified

        result = ScanResult(
            updated_count=updated,
            already_overdue_count=already,
            skipped_count=skipped,
            total_checked=len(candidates),
            notifications_sent=sent,
        )
        logger.info(
            "Overdue scan done: updated=%s already=%s skipped=%s total=%s notified=%s",
            result.updated_count,
            result.already_overdue_count,
            result.skipped_count,
            result.total_checked,
            result.notifications_sent,
        )
        return result

    def _mark(self, task: Task, now: datetime) -> tuple[Optional[Task], bool, list[str]]:
        attempt = 0
        while True:
            assignees = self._service.resolve_assignees(task)
            before = {u: resolve_status(u, task.status_by_user) for u in assignees}
            modified = self._service.check_and_mark_overdue(task, now)
            if not modified:
                return task, False, []

            newly = sorted(
                u for u in assignees if before[u] != Status.OVERDUE and resolve_status(u, task.status_by_user) == Status.OVERDUE
            )
            try:
                self._tasks.save(task)
                return task, True, newly
            except ConflictError:
                if attempt >= self._conflict_retries:
                    raise
                attempt += 1
                fresh = self._tasks.find_by_id(task.task_id)
                if fresh is None or not fresh.is_active:
                    logger.info("Task %s was removed during overdue scan", task.task_id)
                    return None, False, []
                logger.info("Task %s changed during overdue scan; re-evaluating", task.task_id)
                task = fresh

    def _process(self, task: Task, now: datetime) -> tuple[bool, int]:
        task, modified, recipients = self._mark(task, now)

        if task is None or not task.is_active or task.overall_status != Status.OVERDUE or task.overdue_notified:
            return modified, 0
        if not modified:
            # An earlier fan-out failed; retry it for everyone still overdue.
            recipients = sorted(
                u for u in self._service.resolve_assignees(task) if resolve_status(u, task.status_by_user) == Status.OVERDUE
            )
        if not recipients:
            return modified, 0

        sent = 0
        for uid in recipients:
            ok = dispatch_notification(
                self._notifier,
                user_id=uid,
                title="Task Marked as Overdue",
                message=f'Task "{task.title}" has been automatically marked as overdue.',
                type=NotificationType.TASK_OVERDUE,
                related_task_id=task.task_id,
                metadata={
                    "dueDate": to_iso(task.due_at),
                    "taskTitle": task.title,
                    "markedAt": to_iso(task.marked_overdue_at),
                },
            )
            sent += 1 if ok else 0

        if sent:
            task.overdue_notified = True
            try:
                self._tasks.save(task)
            except ConflictError:
                # The next scan sees overdue_notified unset and may notify again.
                logger.warning("Could not record overdue notification for task %s", task.task_id)
        return modified, sent
