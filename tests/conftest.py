from __future__ import annotations

from concurrent.futures import Executor, Future
from datetime import date
from typing import Any, Callable

import pytest

from statuspage.config import ServicesConfig, validate_services_config
from statuspage.history.recorder import DayRecord
from statuspage.severity import Status, outranks


FIXED_TODAY = date(2026, 3, 15)


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future


class FakeRecorder:
    """In-memory stand-in for HistoryRecorder that keeps every write."""

    def __init__(self, today: date = FIXED_TODAY, *, fail: bool = False):
        self._today = today
        self.fail = fail
        self.writes: list[tuple[str, Status]] = []
        self.days: dict[tuple[date, str], DayRecord] = {}

    def today(self) -> date:
        return self._today

    def record_observation(self, component_id: str, status: Any, *, day: date | None = None) -> DayRecord:
        if self.fail:
            raise RuntimeError("database unavailable")
        status = Status(status)
        day = day or self._today
        self.writes.append((component_id, status))
        current = self.days.get((day, component_id))
        if current is None:
            current = DayRecord(day=day, component_id=component_id, status=status)
        elif outranks(status, current.status):
            current = DayRecord(day=day, component_id=component_id, status=status, uptime_pct=current.uptime_pct)
        self.days[(day, component_id)] = current
        return current

    def get_history(self, component_id: str, limit: int = 90) -> list[DayRecord]:
        records = [r for (d, cid), r in self.days.items() if cid == component_id]
        records.sort(key=lambda r: r.day, reverse=True)
        return records[:limit]


def services_payload() -> list[dict[str, Any]]:
    return [
        {
            "id": "core",
            "name": "Core",
            "services": [
                {"id": "api", "name": "API", "url": "https://api.example.net/health"},
                {"id": "web", "name": "Website", "url": "https://www.example.net", "interval": 60},
            ],
        },
        {
            "id": "data",
            "name": "Data",
            "services": [
                {"id": "db", "name": "Database", "url": "https://db.example.net", "probe_config": {"timeout": 2500}},
                {"id": "docs", "name": "Docs"},
            ],
        },
    ]


@pytest.fixture
def services_config() -> ServicesConfig:
    return validate_services_config(services_payload())


@pytest.fixture
def fake_recorder() -> FakeRecorder:
    return FakeRecorder()


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()
