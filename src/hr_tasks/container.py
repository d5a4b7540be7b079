from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from .common.datetime_utils import now_utc
from .core.constants import DEFAULT_CONFLICT_RETRIES
from .database.connection import DBConfig, DatabaseConnection
from .groups.mysql_group_repository import MySQLGroupDirectory
from .groups.repository import GroupDirectory
from .notifications.mysql_notification_repository import MySQLNotificationRepository
from .notifications.repository import Notifier
from .tasks.mysql_task_repository import MySQLTaskRepository
from .tasks.overdue_scanner import OverdueScanner
from .tasks.recurrence import RecurringTaskGenerator
from .tasks.repository import TaskRepository
from .tasks.service import TaskService


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    tasks_repo: TaskRepository
    groups_repo: GroupDirectory
    notifier: Notifier

    task_service: TaskService
    overdue_scanner: OverdueScanner
    recurring_generator: RecurringTaskGenerator


def wire_services(
    *,
    tasks_repo: TaskRepository,
    groups_repo: GroupDirectory,
    notifier: Notifier,
    conn: Optional[DatabaseConnection] = None,
    clock: Callable[[], datetime] = now_utc,
    conflict_retries: int = DEFAULT_CONFLICT_RETRIES,
    recurring_lead_hours: int = 24,
) -> Container:
    """Build the services on top of any repository implementations."""
    task_service = TaskService(
        tasks_repo,
        groups_repo,
        notifier,
        clock=clock,
        conflict_retries=conflict_retries,
    )
    overdue_scanner = OverdueScanner(
        task_service,
        tasks_repo,
        notifier,
        clock=clock,
        conflict_retries=conflict_retries,
    )
    recurring_generator = RecurringTaskGenerator(
        tasks_repo,
        task_service,
        lead_time=timedelta(hours=int(recurring_lead_hours)),
        clock=clock,
    )

    return Container(
        conn=conn,
        tasks_repo=tasks_repo,
        groups_repo=groups_repo,
        notifier=notifier,
        task_service=task_service,
        overdue_scanner=overdue_scanner,
        recurring_generator=recurring_generator,
    )


def build_container(
    *,
    db_config: dict,
    conflict_retries: int = DEFAULT_CONFLICT_RETRIES,
    recurring_lead_hours: int = 24,
) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    return wire_services(
        tasks_repo=MySQLTaskRepository(conn),
        groups_repo=MySQLGroupDirectory(conn),
        notifier=MySQLNotificationRepository(conn),
        conn=conn,
        conflict_retries=conflict_retries,
        recurring_lead_hours=recurring_lead_hours,
    )
