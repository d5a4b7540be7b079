from __future__ import annotations

from typing import Optional, Sequence

from ..core.exceptions import NotFoundError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Group
from .repository import GroupDirectory


class MySQLGroupDirectory(GroupDirectory):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_group(self, group_id: str) -> Optional[Group]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT group_id, name, created_by, is_active
                FROM task_groups
                WHERE group_id=%s
                """,
                (str(group_id),),
            )
            r = fetchone(cur)
            if not r:
                return None

            cur.execute(
                "SELECT user_id FROM task_group_members WHERE group_id=%s",
                (str(group_id),),
            )
            members = frozenset(str(m["user_id"]) for m in fetchall(cur))
            return Group(
                group_id=str(r["group_id"]),
                name=r["name"],
                created_by=str(r["created_by"]),
                members=members,
                is_active=bool(r["is_active"]),
            )

    def resolve_group_members(self, group_id: str) -> frozenset[str]:
        group = self.get_group(group_id)
        if group is None or not group.is_active:
            raise NotFoundError(f"Group {group_id} not found")
        return group.members

    def list_groups_for_member(self, user_id: str) -> Sequence[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT g.group_id
                FROM task_group_members m
                JOIN task_groups g ON g.group_id = m.group_id
                WHERE m.user_id=%s AND g.is_active=1
                ORDER BY g.group_id
                """,
                (str(user_id),),
            )
            return [str(r["group_id"]) for r in fetchall(cur)]
