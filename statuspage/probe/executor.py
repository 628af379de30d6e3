from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import ServiceEntry


MAX_REDIRECTS = 5


@dataclass(frozen=True)
class ProbeOutcome:
    """Raw, un-debounced result of one health check."""

    component_id: str
    ok: bool
    latency_ms: float
    error: str | None = None
    status_code: int | None = None


def build_probe_client() -> httpx.AsyncClient:
    """Shared keep-alive client for all probes in this process."""
    return httpx.AsyncClient(
        follow_redirects=True,
        max_redirects=MAX_REDIRECTS,
        limits=httpx.Limits(max_keepalive_connections=20, keepalive_expiry=30.0),
    )


def _request_kwargs(service: ServiceEntry) -> dict[str, Any]:
    cfg = service.probe_config
    kwargs: dict[str, Any] = {
        "method": (cfg.method if cfg else "GET").upper(),
        "url": str(service.url),
        "headers": dict(cfg.headers) if cfg else {},
        "timeout": service.timeout_seconds,
    }
    body = cfg.body if cfg else None
    if isinstance(body, (dict, list)):
        kwargs["json"] = body
    elif body is not None:
        kwargs["content"] = str(body)
    return kwargs


async def execute_probe(service: ServiceEntry, client: httpx.AsyncClient) -> ProbeOutcome:
    """Issue one request against the component's target.

    Any HTTP response counts as reachable, whatever its status code. Only transport
    level errors and timeouts are failures. The configured timeout bounds the whole
    request, including a body that trickles in slowly.
    """
    started = time.perf_counter()

    def _failure(error: str) -> ProbeOutcome:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return ProbeOutcome(
            component_id=service.id,
            ok=False,
            latency_ms=round(elapsed_ms, 3),
            error=error,
        )

    deadline = service.timeout_seconds
    try:
        resp = await asyncio.wait_for(client.request(**_request_kwargs(service)), timeout=deadline)
    except asyncio.TimeoutError:
        return _failure(f"Timeout: exceeded {round(deadline * 1000)}ms")
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return _failure(f"{type(e).__name__}: {e}" if str(e) else type(e).__name__)

    elapsed_ms = (time.perf_counter() - started) * 1000.0
    return ProbeOutcome(
        component_id=service.id,
        ok=True,
        latency_ms=round(elapsed_ms, 3),
        status_code=resp.status_code,
    )
