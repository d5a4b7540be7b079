from __future__ import annotations

from typing import Iterable, Mapping

from ..core.enums import Status
from .model import PerUserStatus


def resolve_status(user_id: str, status_by_user: Mapping[str, PerUserStatus]) -> Status:
    """A user with no entry is implicitly pending."""
    entry = status_by_user.get(user_id)
    return entry.status if entry is not None else Status.PENDING


def derive_overall_status(
    assignee_ids: Iterable[str],
    status_by_user: Mapping[str, PerUserStatus],
    *,
    overdue_episode_active: bool = False,
) -> Status:
    """Compute a task's single aggregate status from its per-user statuses.

    Rules, first match wins:
    - no assignees -> pending
    - everyone completed -> completed
    - overdue episode open and anyone still overdue -> overdue
    - anyone in-progress -> in-progress
    - everyone pending -> pending
    - any other mix -> in-progress

    The aggregate is never "more complete" than the least progressed
    assignee. Pure: callers persist the result.
    """
    statuses = [resolve_status(u, status_by_user) for u in set(assignee_ids)]
    if not statuses:
        return Status.PENDING

    if all(s == Status.COMPLETED for s in statuses):
        return Status.COMPLETED

    if overdue_episode_active and any(s == Status.OVERDUE for s in statuses):
        return Status.OVERDUE

    if any(s == Status.IN_PROGRESS for s in statuses):
        return Status.IN_PROGRESS

    if all(s == Status.PENDING for s in statuses):
        return Status.PENDING

    return Status.IN_PROGRESS
