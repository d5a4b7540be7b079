from __future__ import annotations

import logging
from typing import Any, Optional

from ..core.enums import NotificationType
from .repository import Notifier

logger = logging.getLogger(__name__)


def dispatch_notification(
    notifier: Notifier,
    *,
    user_id: str,
    title: str,
    message: str,
    type: NotificationType,
    related_task_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> bool:
    """Best-effort send. Failures are logged and reported as False, never raised."""
    try:
        notifier.notify(user_id, title, message, type, related_task_id, metadata)
    except Exception:
        logger.exception(
            "Notification %s to user=%s for task=%s failed",
            NotificationType(type).value,
            user_id,
            related_task_id,
        )
        return False
    return True
