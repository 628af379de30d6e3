from __future__ import annotations

import argparse
import asyncio
import dataclasses
import sqlite3
from datetime import timezone
from typing import Optional

import structlog
import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from .aggregator import Aggregator, ConfigReloadController
from .api import create_app
from .config import ServicesConfig, load_services_config
from .history import HistoryRecorder, RetentionJob
from .incidents import IncidentManager, IncidentStore
from .logging_config import configure_logging
from .probe import (
    ProbeScheduler,
    ReporterConfig,
    ReportingClient,
    build_probe_client,
)
from .settings import Settings


logger = structlog.get_logger(__name__)


def build_central_app(settings: Settings, config: Optional[ServicesConfig] = None) -> FastAPI:
    """Wire the aggregator, persistence and HTTP layer for central mode."""
    config = config or load_services_config(settings.services_config_path)

    recorder = HistoryRecorder(settings.db_path)
    aggregator = Aggregator(config, recorder, history_limit=settings.history_days)
    incidents = IncidentManager(IncidentStore(settings.db_path), aggregator)
    reload_controller = ConfigReloadController(aggregator, settings.services_config_path)

    app = create_app(settings, aggregator=aggregator, incidents=incidents, reload_controller=reload_controller)

    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    retention = RetentionJob(recorder, settings.retention_days)
    app.state.scheduler = scheduler

    @app.on_event("startup")
    async def _startup() -> None:
        await asyncio.to_thread(aggregator.hydrate_history)
        try:
            await asyncio.to_thread(incidents.sync_open_incidents)
        except sqlite3.Error as e:
            logger.error("Failed to sync active incidents", error=str(e))
        retention.schedule(scheduler)
        scheduler.start()
        logger.info("Central API started", components=len(aggregator.component_ids()))

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        if scheduler.running:
            scheduler.shutdown(wait=False)
        await asyncio.to_thread(aggregator.close)
        logger.info("Central API stopped")

    return app


async def run_probe(settings: Settings, config: ServicesConfig) -> None:
    """Probe mode: check every configured target and report to the central API."""
    client = build_probe_client()
    reporter = ReportingClient(
        ReporterConfig(
            central_api_url=settings.central_api_url,
            api_secret=settings.api_secret,
            region=settings.region,
        ),
        client,
    )
    probes = ProbeScheduler(reporter, client)
    probes.configure(config)
    await probes.start()
    logger.info("Probe service running", region=settings.region, central_api_url=settings.central_api_url)
    try:
        await asyncio.Event().wait()
    finally:
        await probes.stop()
        await client.aclose()


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Status aggregation service")
    parser.add_argument("--probe", action="store_true", help="Run as a regional probe instead of the central API")
    parser.add_argument("--region", default=None, help="Region name reported by this probe")
    parser.add_argument("--config", default=None, help="Path to services configuration (YAML or JSON)")
    parser.add_argument("--port", type=int, default=None, help="Port for the central API")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)
    settings = Settings()
    overrides: dict[str, object] = {}
    if args.probe:
        overrides["probe_mode"] = True
    if args.region:
        overrides["region"] = args.region
    if args.config:
        overrides["services_config_path"] = args.config
    if args.port is not None:
        overrides["port"] = args.port
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    configure_logging(settings.log_level, settings.log_format)

    # An invalid configuration at startup is fatal.
    config = load_services_config(settings.services_config_path)

    if settings.probe_mode:
        logger.info("Starting probe service", region=settings.region)
        try:
            asyncio.run(run_probe(settings, config))
        except KeyboardInterrupt:
            logger.info("Probe service interrupted")
        return

    logger.info("Starting central API", port=settings.port)
    app = build_central_app(settings, config)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
