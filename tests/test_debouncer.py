from __future__ import annotations

import pytest

from statuspage.probe.debouncer import FailureDebouncer
from statuspage.probe.executor import ProbeOutcome
from statuspage.severity import Status


def _fail(component_id: str = "api", error: str = "ConnectError: refused") -> ProbeOutcome:
    return ProbeOutcome(component_id=component_id, ok=False, latency_ms=12.0, error=error)


def _ok(component_id: str = "api") -> ProbeOutcome:
    return ProbeOutcome(component_id=component_id, ok=True, latency_ms=8.0, status_code=200)


@pytest.mark.parametrize("failures", [1, 2])
def test_short_failure_runs_are_masked(failures: int) -> None:
    d = FailureDebouncer()
    for _ in range(failures):
        result = d.observe(_fail())
        assert result.status is Status.OPERATIONAL
        assert result.error is None

    result = d.observe(_ok())
    assert result.status is Status.OPERATIONAL
    assert d.failures("api") == 0


def test_third_consecutive_failure_reports_outage_then_success_resets() -> None:
    d = FailureDebouncer()
    assert d.observe(_fail()).status is Status.OPERATIONAL
    assert d.observe(_fail()).status is Status.OPERATIONAL

    third = d.observe(_fail(error="ReadTimeout: timed out"))
    assert third.status is Status.OUTAGE
    assert third.error == "ReadTimeout: timed out"

    # Still failing: stays in outage.
    assert d.observe(_fail()).status is Status.OUTAGE
    assert d.failures("api") == 4

    recovered = d.observe(_ok())
    assert recovered.status is Status.OPERATIONAL
    assert recovered.error is None
    assert d.failures("api") == 0


def test_success_between_failures_restarts_the_count() -> None:
    d = FailureDebouncer()
    statuses = [d.observe(o).status for o in (_fail(), _fail(), _ok(), _fail(), _fail())]
    assert Status.OUTAGE not in statuses


def test_counters_are_per_component() -> None:
    d = FailureDebouncer()
    for _ in range(2):
        d.observe(_fail("api"))
    d.observe(_fail("web"))

    assert d.observe(_fail("api")).status is Status.OUTAGE
    assert d.observe(_fail("web")).status is Status.OPERATIONAL


def test_result_payload_shape() -> None:
    d = FailureDebouncer(threshold=1)
    payload = d.observe(_fail()).to_payload()
    assert payload == {"status": "outage", "latency": 12.0, "error": "ConnectError: refused"}


def test_prune_drops_removed_components() -> None:
    d = FailureDebouncer()
    d.observe(_fail("api"))
    d.observe(_fail("old"))
    d.prune(["api"])
    assert d.failures("api") == 1
    assert d.failures("old") == 0
