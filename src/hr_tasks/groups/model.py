from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Group:
    """Domain entity: a named set of users that tasks can be assigned to.

    Note: Members are read live whenever a task's assignee set is evaluated.
    """

    group_id: str
    name: str
    created_by: str
    members: frozenset[str] = field(default_factory=frozenset)
    is_active: bool = True

    def usable_by(self, user_id: str) -> bool:
        return self.is_active and self.created_by == user_id
