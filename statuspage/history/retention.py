from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .recorder import DEFAULT_RETENTION_DAYS, HistoryRecorder


logger = structlog.get_logger(__name__)

RETENTION_JOB_ID = "history_retention"


class RetentionJob:
    """Purges old daily records at startup and every 24 hours."""

    def __init__(self, recorder: HistoryRecorder, retention_days: int = DEFAULT_RETENTION_DAYS):
        self.recorder = recorder
        self.retention_days = int(retention_days)

    def run_once(self) -> Optional[int]:
        try:
            return self.recorder.purge_older_than(self.retention_days)
        except (sqlite3.Error, OSError) as e:
            logger.error("Retention purge failed", retention_days=self.retention_days, error=str(e))
            return None

    def schedule(self, scheduler: AsyncIOScheduler) -> None:
        scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(hours=24, timezone=timezone.utc),
            id=RETENTION_JOB_ID,
            name="Purge daily history beyond retention",
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("Scheduled retention purge", retention_days=self.retention_days, interval_hours=24)
