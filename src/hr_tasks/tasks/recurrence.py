"""Recurring tasks.

A recurring task is a template: on each occurrence a plain (non-recurring)
child task is created with the template's assignees, and the template's
`next_occurrence` moves forward by its repeat pattern.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from ..common.datetime_utils import ensure_utc, now_utc
from ..core.enums import WEEKDAY_NAMES, RepeatPattern
from ..core.exceptions import ValidationError
from .repository import TaskRepository

if TYPE_CHECKING:
    from .service import TaskService

logger = logging.getLogger(__name__)


def normalize_repeat_days(days: Optional[Iterable[str]]) -> tuple[str, ...]:
    seen: set[str] = set()
    for d in days or ():
        name = str(d).strip().lower()
        if name not in WEEKDAY_NAMES:
            raise ValidationError(f"Invalid repeat day {d!r}")
        seen.add(name)
    return tuple(n for n in WEEKDAY_NAMES if n in seen)


def _add_one_month(value: datetime) -> datetime:
    year = value.year + (1 if value.month == 12 else 0)
    month = 1 if value.month == 12 else value.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))


def next_occurrence(
    from_dt: Optional[datetime],
    pattern: RepeatPattern,
    repeat_days: Iterable[str] = (),
) -> Optional[datetime]:
    """Next due time after `from_dt`.

    - daily: +1 day
    - weekly: the next listed weekday strictly after from_dt (+7 days when none listed)
    - monthly: same day next month, clamped to the month's last day
    """
    if from_dt is None or pattern == RepeatPattern.NONE:
        return None

    if pattern == RepeatPattern.DAILY:
        return from_dt + timedelta(days=1)

    if pattern == RepeatPattern.WEEKLY:
        days = set(repeat_days or ())
        if not days:
            return from_dt + timedelta(days=7)
        for offset in range(1, 8):
            candidate = from_dt + timedelta(days=offset)
            if WEEKDAY_NAMES[candidate.weekday()] in days:
                return candidate
        return from_dt + timedelta(days=7)

    if pattern == RepeatPattern.MONTHLY:
        return _add_one_month(from_dt)

    return None


@dataclass(frozen=True)
class GenerationResult:
    generated_count: int
    skipped_count: int
    total_checked: int


class RecurringTaskGenerator:
    """Batch entry point run by the external scheduler (see `flask generate-recurring`)."""

    def __init__(
        self,
        tasks: TaskRepository,
        service: "TaskService",
        *,
        lead_time: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = now_utc,
    ):
        self._tasks = tasks
        self._service = service
        self._lead_time = lead_time
        self._clock = clock

    def generate_due(self, now: Optional[datetime] = None) -> GenerationResult:
        now = ensure_utc(now) if now else self._clock()
        horizon = now + self._lead_time

        templates = list(self._tasks.find_recurring_due(horizon))
        generated = 0
        skipped = 0
        for template in templates:
            try:
                self._spawn(template, now)
                generated += 1
            except Exception:
                logger.exception("Recurring generation failed for task %s", template.task_id)
                skipped += 1

        result = GenerationResult(generated_count=generated, skipped_count=skipped, total_checked=len(templates))
        logger.info(
            "Recurring generation done: generated=%s skipped=%s total=%s",
            result.generated_count,
            result.skipped_count,
            result.total_checked,
        )
        return result

    def _spawn(self, template, now: datetime) -> None:
        occurrence = template.next_occurrence
        following = next_occurrence(occurrence, template.repeat_pattern, template.repeat_days)
        if template.recurrence_end_date is not None and following is not None and following > template.recurrence_end_date:
            following = None

        # Advance the template first: a lost race here must not create a duplicate child.
        template.next_occurrence = following
        template.recurrence_count += 1
        template.updated_at = now
        self._tasks.save(template)

        child = self._service.spawn_occurrence(template, due_at=occurrence, now=now)
        logger.info(
            "Generated task %s from recurring task %s (due=%s next=%s)",
            child.task_id,
            template.task_id,
            occurrence.isoformat(),
            following.isoformat() if following else None,
        )
