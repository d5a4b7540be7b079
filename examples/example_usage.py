"""Example: drive the task service directly (no Flask, no CLI).

Creates a task for two users, reports progress, then runs an overdue scan
as of a time after the due date.
"""

import importlib
from datetime import timedelta

from config import get_settings_module

from hr_tasks.common.datetime_utils import now_utc
from hr_tasks.container import build_container
from hr_tasks.logging_setup import setup_logging


def main():
    setup_logging(level="INFO")
    settings = importlib.import_module(get_settings_module())
    container = build_container(db_config=settings.DB_CONFIG)
    service = container.task_service

    now = now_utc()
    task = service.create_task(
        "Submit Q3 expense reports",
        now + timedelta(hours=2),
        "high",
        ["u-alice", "u-bob"],
        [],
        "u-manager",
        creator_role="manager",
    )
    service.report_status(task.task_id, "u-alice", "completed", "Sent to finance")
    print(service.get_task(task.task_id).overall_status.value)

    result = container.overdue_scanner.scan_and_mark_overdue(now + timedelta(hours=3))
    print(result)
    print(service.get_task(task.task_id).overall_status.value)


if __name__ == "__main__":
    main()
