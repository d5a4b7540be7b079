from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import to_naive_utc
from ..core.enums import OPEN_STATUSES, Status
from ..core.exceptions import ConflictError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, load_json_column
from .document import task_from_document, task_to_document
from .model import Task
from .repository import TaskRepository, count_open_entries

logger = logging.getLogger(__name__)

_OPEN_VALUES = tuple(sorted(s.value for s in OPEN_STATUSES))


class MySQLTaskRepository(TaskRepository):
    """Document-style task store on MySQL.

    The whole task lives in the `document` JSON column; the scalar columns are
    copies kept only for indexing and filtering, rewritten on every save.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @staticmethod
    def _index_columns(task: Task) -> tuple:
        return (
            1 if task.is_active else 0,
            to_naive_utc(task.due_at),
            task.overall_status.value,
            count_open_entries(task),
            len(task.assigned_groups),
            1 if task.overdue_notified else 0,
            1 if task.is_recurring else 0,
            to_naive_utc(task.next_occurrence),
            to_naive_utc(task.recurrence_end_date),
            task.created_by,
        )

    def _row_to_task(self, r: dict) -> Task:
        return task_from_document(load_json_column(r["document"]), version=int(r["version"]))

    def find_by_id(self, task_id: str) -> Optional[Task]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT task_id, version, document FROM tasks WHERE task_id=%s",
                (str(task_id),),
            )
            r = fetchone(cur)
            return self._row_to_task(r) if r else None

    def find_active_overdue_candidates(self, now: datetime) -> Iterable[Task]:
        placeholders = ",".join(["%s"] * len(_OPEN_VALUES))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT task_id, version, document
                FROM tasks
                WHERE is_active=1
                  AND due_at IS NOT NULL
                  AND due_at < %s
                  AND (
                        overall_status IN ({placeholders})
                        OR open_assignees > 0
                        OR group_count > 0
                        OR (overall_status=%s AND overdue_notified=0)
                  )
                ORDER BY due_at
                """,
                (to_naive_utc(now), *_OPEN_VALUES, Status.OVERDUE.value),
            )
            rows = fetchall(cur)
        return [self._row_to_task(r) for r in rows]

    def find_for_assignee(self, user_id: str, group_ids: Sequence[str]) -> Sequence[Task]:
        clauses = ["JSON_CONTAINS(JSON_EXTRACT(document, '$.directAssignees'), JSON_QUOTE(%s))"]
        params: list[object] = [str(user_id)]
        for gid in group_ids:
            clauses.append("JSON_CONTAINS(JSON_EXTRACT(document, '$.assignedGroups'), JSON_QUOTE(%s))")
            params.append(str(gid))

        where = " OR ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT task_id, version, document
                FROM tasks
                WHERE is_active=1 AND ({where})
                ORDER BY created_at DESC
                """,
                tuple(params),
            )
            rows = fetchall(cur)
        return [self._row_to_task(r) for r in rows]

    def find_created_by(self, user_id: str, *, recurring_only: bool = False) -> Sequence[Task]:
        where = "is_active=1 AND created_by=%s"
        order = "created_at DESC"
        if recurring_only:
            where += " AND is_recurring=1"
            order = "next_occurrence IS NULL, next_occurrence, created_at DESC"

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT task_id, version, document FROM tasks WHERE {where} ORDER BY {order}",
                (str(user_id),),
            )
            rows = fetchall(cur)
        return [self._row_to_task(r) for r in rows]

    def find_recurring_due(self, horizon: datetime) -> Iterable[Task]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT task_id, version, document
                FROM tasks
                WHERE is_active=1
                  AND is_recurring=1
                  AND next_occurrence IS NOT NULL
                  AND next_occurrence <= %s
                  AND (recurrence_end_date IS NULL OR recurrence_end_date >= next_occurrence)
                ORDER BY next_occurrence
                """,
                (to_naive_utc(horizon),),
            )
            rows = fetchall(cur)
        return [self._row_to_task(r) for r in rows]

    def insert(self, task: Task) -> None:
        document = json.dumps(task_to_document(task), ensure_ascii=False)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO tasks(
                    task_id, version, is_active, due_at, overall_status, open_assignees,
                    group_count, overdue_notified, is_recurring, next_occurrence,
                    recurrence_end_date, created_by, created_at, document
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    task.task_id,
                    1,
                    *self._index_columns(task),
                    to_naive_utc(task.created_at),
                    document,
                ),
            )
        task.version = 1

    def save(self, task: Task) -> None:
        if task.version <= 0:
            raise ConflictError(f"Task {task.task_id} was never inserted")

        document = json.dumps(task_to_document(task), ensure_ascii=False)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE tasks
                SET version=version+1,
                    is_active=%s, due_at=%s, overall_status=%s, open_assignees=%s,
                    group_count=%s, overdue_notified=%s, is_recurring=%s, next_occurrence=%s,
                    recurrence_end_date=%s, created_by=%s, document=%s
                WHERE task_id=%s AND version=%s
                """,
                (
                    *self._index_columns(task),
                    document,
                    task.task_id,
                    int(task.version),
                ),
            )
            if cur.rowcount != 1:
                logger.info("Stale save rejected task=%s version=%s", task.task_id, task.version)
                raise ConflictError(f"Task {task.task_id} was modified concurrently")
        task.version += 1
