"""Durable per-day worst-status history."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

import structlog

from ..severity import PRIORITY, Status
from .db import connect, ensure_schema_conn


logger = structlog.get_logger(__name__)

DEFAULT_RETENTION_DAYS = 365
DEFAULT_HISTORY_LIMIT = 90
SEED_UPTIME_PCT = 100.0


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _priority_sql(column: str) -> str:
    whens = " ".join(f"WHEN '{status}' THEN {rank}" for status, rank in PRIORITY.items())
    return f"(CASE {column} {whens} ELSE 0 END)"


# Insert today's row seeded at 100% uptime, or raise the stored status when the
# new one is strictly more severe. A day's status never goes down.
_UPSERT_SQL = f"""
INSERT INTO daily_stats (date, component_id, status, uptime_pct)
VALUES (?, ?, ?, ?)
ON CONFLICT(date, component_id) DO UPDATE SET status = excluded.status
WHERE {_priority_sql('excluded.status')} > {_priority_sql('daily_stats.status')}
"""


@dataclass(frozen=True)
class DayRecord:
    day: date
    component_id: str
    status: Status
    uptime_pct: float = SEED_UPTIME_PCT

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "status": self.status.value,
            "uptime_pct": self.uptime_pct,
        }

    @classmethod
    def from_row(cls, row: Any) -> "DayRecord":
        return cls(
            day=date.fromisoformat(str(row["date"])),
            component_id=str(row["component_id"]),
            status=Status(str(row["status"])),
            uptime_pct=float(row["uptime_pct"]),
        )


class HistoryRecorder:
    """Reads and writes ``daily_stats`` rows keyed by ``(date, component_id)``.

    ``today`` is injectable so date boundaries can be tested; by default it is the
    current UTC calendar date. Each call opens its own connection, so the recorder
    is safe to use from a background writer thread.
    """

    def __init__(self, db_path: str, *, today: Optional[Callable[[], date]] = None):
        self.db_path = db_path
        self.today = today or utc_today
        conn = connect(self.db_path)
        try:
            ensure_schema_conn(conn)
        finally:
            conn.close()

    def record_observation(self, component_id: str, status: str | Status, *, day: Optional[date] = None) -> DayRecord:
        """Upsert the day's record and return what is stored afterwards."""
        status = Status(status)
        day = day or self.today()
        conn = connect(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                conn.execute(_UPSERT_SQL, (day.isoformat(), component_id, status.value, SEED_UPTIME_PCT))
                row = conn.execute(
                    "SELECT * FROM daily_stats WHERE date=? AND component_id=?",
                    (day.isoformat(), component_id),
                ).fetchone()
                conn.execute("COMMIT;")
            except Exception:
                conn.execute("ROLLBACK;")
                raise
        finally:
            conn.close()

        record = DayRecord.from_row(row)
        logger.debug("Recorded observation",
                     component_id=component_id,
                     observed=status.value,
                     stored=record.status.value,
                     day=record.day.isoformat())
        return record

    def get_history(self, component_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[DayRecord]:
        """Most recent ``limit`` daily records, newest first."""
        conn = connect(self.db_path)
        try:
            rows = conn.execute(
                """
                SELECT * FROM daily_stats
                WHERE component_id=?
                ORDER BY date DESC
                LIMIT ?
                """,
                (component_id, max(0, int(limit))),
            ).fetchall()
        finally:
            conn.close()
        return [DayRecord.from_row(r) for r in rows]

    def get_day(self, component_id: str, day: Optional[date] = None) -> Optional[DayRecord]:
        day = day or self.today()
        conn = connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM daily_stats WHERE date=? AND component_id=?",
                (day.isoformat(), component_id),
            ).fetchone()
        finally:
            conn.close()
        return DayRecord.from_row(row) if row else None

    def purge_older_than(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete daily records dated before ``today - retention_days``."""
        cutoff = self.today() - timedelta(days=int(retention_days))
        conn = connect(self.db_path)
        try:
            cur = conn.execute("DELETE FROM daily_stats WHERE date < ?", (cutoff.isoformat(),))
            purged = int(cur.rowcount or 0)
        finally:
            conn.close()
        logger.info("Purged daily records", purged=purged, cutoff=cutoff.isoformat())
        return purged
