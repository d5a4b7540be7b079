from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User role used for permission checks."""

    ADMIN = "admin"
    MANAGER = "manager"
    HR = "hr"
    EMPLOYEE = "employee"

    @property
    def is_privileged(self) -> bool:
        return self in PRIVILEGED_ROLES


PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.MANAGER, Role.HR})


class Status(str, Enum):
    """Per-user and overall task status."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"
    ONHOLD = "onhold"
    REOPEN = "reopen"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


# Statuses the overdue scan may force to OVERDUE.
OPEN_STATUSES = frozenset({Status.PENDING, Status.IN_PROGRESS, Status.REOPEN, Status.ONHOLD})

# Resolved work; never downgraded by the overdue scan.
CLOSED_STATUSES = frozenset({Status.COMPLETED, Status.APPROVED, Status.REJECTED, Status.CANCELLED})


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ChangedByType(str, Enum):
    """Who caused a status history record."""

    USER = "user"
    SYSTEM = "system"


class RepeatPattern(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    STATUS_UPDATED = "status_updated"
    TASK_COMPLETED = "task_completed"
    TASK_OVERDUE = "task_overdue"


WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
