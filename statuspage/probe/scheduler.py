"""Per-component probe timers for one region process."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ServiceEntry, ServicesConfig
from .debouncer import FailureDebouncer
from .executor import ProbeOutcome, execute_probe
from .reporter import ReportingClient


logger = structlog.get_logger(__name__)

MAX_STARTUP_JITTER_SECONDS = 5.0
JOB_PREFIX = "probe:"

ProbeFunc = Callable[[ServiceEntry, httpx.AsyncClient], Awaitable[ProbeOutcome]]


class ProbeScheduler:
    """Owns one independent repeating APScheduler job per probed component.

    Every ``configure`` call starts a new generation: all jobs of the previous
    generation are removed before new ones are added, and a check that was already
    in flight when the generation changed drops its result instead of reporting it.
    """

    def __init__(
        self,
        reporter: ReportingClient,
        client: httpx.AsyncClient,
        *,
        debouncer: Optional[FailureDebouncer] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        probe: ProbeFunc = execute_probe,
        max_jitter_seconds: float = MAX_STARTUP_JITTER_SECONDS,
        rng: Optional[random.Random] = None,
    ):
        self.reporter = reporter
        self.client = client
        self.debouncer = debouncer or FailureDebouncer()
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.probe = probe
        self.max_jitter_seconds = max(0.0, float(max_jitter_seconds))
        self.rng = rng or random.Random()
        self.generation = 0
        self.jobs: dict[str, dict[str, Any]] = {}
        self.running = False

    async def start(self) -> None:
        if self.running:
            logger.warning("Probe scheduler already running")
            return
        self.scheduler.start()
        self.running = True
        logger.info("Probe scheduler started", region=self.reporter.cfg.region, jobs=len(self.jobs))

    async def stop(self) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        self.running = False
        self.jobs.clear()
        logger.info("Probe scheduler stopped")

    def cancel_all(self) -> None:
        """Remove every probe job of the current generation."""
        for job_id in list(self.jobs):
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                logger.debug("Probe job already gone", job_id=job_id)
        self.jobs.clear()

    def configure(self, config: ServicesConfig) -> int:
        """Replace the schedule with one job per component that has a target URL."""
        self.cancel_all()
        self.generation += 1
        generation = self.generation

        now = datetime.now(timezone.utc)
        active_ids: list[str] = []
        for _group, service in config.components():
            if not service.probed:
                continue
            delay = self.rng.random() * self.max_jitter_seconds
            job_id = f"{JOB_PREFIX}{service.id}"
            job = self.scheduler.add_job(
                self.run_check,
                trigger=IntervalTrigger(
                    seconds=service.interval_seconds,
                    start_date=now + timedelta(seconds=delay),
                    timezone=timezone.utc,
                ),
                id=job_id,
                name=f"probe {service.id}",
                args=(service, generation),
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self.jobs[job_id] = {
                "job": job,
                "component_id": service.id,
                "interval_seconds": service.interval_seconds,
                "startup_delay_seconds": round(delay, 3),
                "generation": generation,
            }
            active_ids.append(service.id)
            logger.info("Scheduled probe",
                        component_id=service.id,
                        interval_seconds=service.interval_seconds,
                        startup_delay_seconds=round(delay, 3))

        self.debouncer.prune(active_ids)
        logger.info("Probe schedule configured", generation=generation, jobs=len(active_ids))
        return len(active_ids)

    async def run_check(self, service: ServiceEntry, generation: int) -> None:
        """Probe, debounce and report one component."""
        if generation != self.generation:
            return

        outcome = await self.probe(service, self.client)

        # The schedule may have been replaced while the request was in flight.
        if generation != self.generation:
            logger.debug("Dropping result from retired schedule", component_id=service.id, generation=generation)
            return

        result = self.debouncer.observe(outcome)
        await self.reporter.send([result])

    def list_jobs(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for job_id, info in self.jobs.items():
            job = self.scheduler.get_job(job_id)
            next_run = getattr(job, "next_run_time", None) if job is not None else None
            out.append({
                "job_id": job_id,
                "component_id": info["component_id"],
                "interval_seconds": info["interval_seconds"],
                "generation": info["generation"],
                "next_run": next_run.isoformat() if next_run else None,
            })
        return out
