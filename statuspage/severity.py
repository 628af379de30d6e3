"""Severity ordering shared by every status merge."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class Status(str, Enum):
    OPERATIONAL = "operational"
    MAINTENANCE = "maintenance"
    DEGRADED = "degraded"
    OUTAGE = "outage"


RESOLVED = "resolved"

PRIORITY: dict[str, int] = {
    Status.OPERATIONAL.value: 0,
    Status.MAINTENANCE.value: 1,
    Status.DEGRADED.value: 2,
    Status.OUTAGE.value: 3,
}


def _value(status: str | Status) -> str:
    return status.value if isinstance(status, Status) else str(status).strip().lower()


def priority(status: str | Status | None) -> int:
    """Unknown or missing values rank as operational."""
    if status is None:
        return 0
    return PRIORITY.get(_value(status), 0)


def outranks(candidate: str | Status | None, current: str | Status | None) -> bool:
    """True only when ``candidate`` is strictly more severe than ``current``."""
    if candidate is None:
        return False
    return priority(candidate) > priority(current)


def worst(statuses: Iterable[str | Status]) -> Status:
    result = Status.OPERATIONAL
    for status in statuses:
        if priority(status) > priority(result):
            result = Status(_value(status))
    return result


def normalize_override(status: str | Status | None) -> Status | None:
    """Map an incident status onto an override value; ``resolved`` clears it."""
    if status is None:
        return None
    value = _value(status)
    if not value or value == RESOLVED:
        return None
    return Status(value)
