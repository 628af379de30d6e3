"""Probe side: executor, failure debouncer, scheduler and reporting client."""

from .debouncer import DebouncedResult, FailureDebouncer
from .executor import ProbeOutcome, build_probe_client, execute_probe
from .reporter import ReporterConfig, ReportingClient
from .scheduler import ProbeScheduler

__all__ = [
    "DebouncedResult",
    "FailureDebouncer",
    "ProbeOutcome",
    "ProbeScheduler",
    "ReporterConfig",
    "ReportingClient",
    "build_probe_client",
    "execute_probe",
]
