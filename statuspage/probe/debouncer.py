"""Consecutive-failure hysteresis for raw probe outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import structlog

from ..severity import Status
from .executor import ProbeOutcome


logger = structlog.get_logger(__name__)

FAILURE_THRESHOLD = 3


@dataclass(frozen=True)
class DebouncedResult:
    component_id: str
    status: Status
    latency: float
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"status": self.status.value, "latency": self.latency, "error": self.error}


class FailureDebouncer:
    """Turns raw outcomes into reportable status for one probing region.

    A failure is only surfaced as ``outage`` once ``threshold`` consecutive checks
    have failed; earlier failures are reported as ``operational`` with no error.
    A single success resets the streak. Counters are local to this process and each
    one is only touched by its own component's timer.
    """

    def __init__(self, threshold: int = FAILURE_THRESHOLD):
        self.threshold = max(1, int(threshold))
        self._failures: dict[str, int] = {}

    def failures(self, component_id: str) -> int:
        return self._failures.get(component_id, 0)

    def observe(self, outcome: ProbeOutcome) -> DebouncedResult:
        component_id = outcome.component_id

        if outcome.ok:
            previous = self._failures.get(component_id, 0)
            if previous > 0:
                logger.info("Probe recovered", component_id=component_id, failures=previous)
            self._failures[component_id] = 0
            return DebouncedResult(component_id=component_id, status=Status.OPERATIONAL, latency=outcome.latency_ms)

        failures = self._failures.get(component_id, 0) + 1
        self._failures[component_id] = failures

        if failures >= self.threshold:
            logger.error("Probe failed",
                         component_id=component_id,
                         attempt=failures,
                         error=outcome.error)
            return DebouncedResult(
                component_id=component_id,
                status=Status.OUTAGE,
                latency=outcome.latency_ms,
                error=outcome.error,
            )

        # Masked failures are never reported upstream; the log is the only trace.
        logger.warning("Probe glitch masked as operational",
                       component_id=component_id,
                       attempt=f"{failures}/{self.threshold}",
                       error=outcome.error)
        return DebouncedResult(component_id=component_id, status=Status.OPERATIONAL, latency=outcome.latency_ms)

    def prune(self, keep_ids: Iterable[str]) -> None:
        keep = set(keep_ids)
        for component_id in list(self._failures):
            if component_id not in keep:
                del self._failures[component_id]
