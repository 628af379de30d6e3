from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import httpx
import structlog

from .debouncer import DebouncedResult


logger = structlog.get_logger(__name__)

API_KEY_HEADER = "x-api-key"


@dataclass(frozen=True)
class ReporterConfig:
    central_api_url: str
    api_secret: str
    region: str
    timeout_seconds: float = 10.0


def build_report_payload(region: str, results: Iterable[DebouncedResult]) -> dict[str, Any]:
    return {
        "region": region,
        "results": {r.component_id: r.to_payload() for r in results},
    }


def check_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/api/check"


class ReportingClient:
    """Fire-and-forget transport of region-tagged results to the aggregator.

    Failed sends are logged and dropped. The next scheduled check supersedes
    whatever was lost, so there is no retry queue.
    """

    def __init__(self, cfg: ReporterConfig, client: httpx.AsyncClient):
        self.cfg = cfg
        self.client = client

    async def send(self, results: list[DebouncedResult]) -> bool:
        if not results:
            return True
        payload = build_report_payload(self.cfg.region, results)
        try:
            resp = await self.client.post(
                check_url(self.cfg.central_api_url),
                headers={API_KEY_HEADER: self.cfg.api_secret},
                json=payload,
                timeout=self.cfg.timeout_seconds,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to report results",
                           region=self.cfg.region,
                           components=[r.component_id for r in results],
                           error=f"{type(exc).__name__}: {exc}")
            return False

        logger.debug("Reported results", region=self.cfg.region, count=len(results))
        return True
