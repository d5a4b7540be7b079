from __future__ import annotations

from typing import Any, Optional, Protocol

from ..core.enums import NotificationType


class Notifier(Protocol):
    """Persists/delivers a notification.

    Callers treat this as fire-and-forget: any exception raised here is caught
    and logged by the caller and never undoes a task mutation.
    """

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType,
        related_task_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        raise NotImplementedError
