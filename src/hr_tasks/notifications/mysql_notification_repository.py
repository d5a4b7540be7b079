from __future__ import annotations

import json
from typing import Any, Optional

from ..common.datetime_utils import now_utc, to_naive_utc
from ..core.enums import NotificationType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor
from .model import Notification
from .repository import Notifier


class MySQLNotificationRepository(Notifier):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType,
        related_task_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self.add(
            Notification(
                user_id=str(user_id),
                title=title,
                message=message,
                type=NotificationType(type),
                related_task_id=related_task_id,
                metadata=dict(metadata or {}),
                created_at=now_utc(),
            )
        )

    def add(self, notification: Notification) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO notifications(user_id, title, message, type, related_task_id, metadata, created_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    notification.user_id,
                    notification.title,
                    notification.message,
                    notification.type.value,
                    notification.related_task_id,
                    json.dumps(notification.metadata, ensure_ascii=False, default=str),
                    to_naive_utc(notification.created_at),
                ),
            )
