from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Type, TypeVar

from ..core.exceptions import ValidationError

E = TypeVar("E", bound=Enum)


def require_non_empty(value: Optional[str], field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def parse_enum(enum_cls: Type[E], value, field_name: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field_name} {value!r} (expected one of: {allowed})")


def unique_ids(values: Optional[Iterable], field_name: str) -> tuple[str, ...]:
    """Normalize an id list: strip, drop duplicates, keep first-seen order."""
    out: list[str] = []
    for v in values or ():
        s = str(v).strip() if v is not None else ""
        if not s:
            raise ValidationError(f"{field_name} contains an empty id")
        if s not in out:
            out.append(s)
    return tuple(out)
