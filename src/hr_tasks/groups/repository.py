from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Group


class GroupDirectory(Protocol):
    """Read-only lookup of groups and their current members.

    Note (DIP): the task services depend on this interface, not on a concrete DB.
    """

    def get_group(self, group_id: str) -> Optional[Group]:
        raise NotImplementedError

    def resolve_group_members(self, group_id: str) -> frozenset[str]:
        """Return current member ids; raise NotFoundError for unknown/inactive groups."""

        raise NotImplementedError

    def list_groups_for_member(self, user_id: str) -> Sequence[str]:
        """Ids of active groups the user currently belongs to."""

        raise NotImplementedError
