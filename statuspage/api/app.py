from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..aggregator import Aggregator, ConfigReloadController
from ..errors import ConfigValidationError, IncidentNotFoundError
from ..incidents import IncidentManager
from ..settings import Settings
from .auth import require_admin, require_probe_key
from .schema import CreateIncidentRequest, IncidentUpdateRequest, MaintenanceRequest, ProbeReport


logger = structlog.get_logger(__name__)


def _invalid(message: str, details: list[dict[str, Any]]) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message, "details": details})


def _validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    return [{"loc": list(e.get("loc", ())), "msg": str(e.get("msg", ""))} for e in exc.errors()]


async def _json_body(req: Request) -> Any:
    raw = await req.body()
    try:
        return json.loads(raw or b"null")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"invalid_json: {exc}") from exc


def create_app(
    settings: Settings,
    *,
    aggregator: Aggregator,
    incidents: IncidentManager,
    reload_controller: ConfigReloadController,
) -> FastAPI:
    app = FastAPI(title="Status Page", version="0.1.0")
    app.state.settings = settings
    app.state.aggregator = aggregator
    app.state.incidents = incidents
    app.state.reload_controller = reload_controller

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "ts": time.time()}

    # -----------------
    # Public
    # -----------------
    @app.get("/api/config")
    async def get_config() -> list[dict[str, Any]]:
        return aggregator.config.to_payload()

    @app.get("/api/status")
    async def get_status() -> dict[str, Any]:
        return aggregator.get_all_status()

    @app.get("/api/incidents/active")
    async def active_incidents() -> list[dict[str, Any]]:
        items = await asyncio.to_thread(incidents.get_open_incidents)
        return [i.to_dict() for i in items]

    @app.get("/api/incidents/history")
    async def incident_history() -> list[dict[str, Any]]:
        return await asyncio.to_thread(incidents.store.get_resolved)

    @app.get("/api/maintenance/active")
    async def active_maintenance() -> list[dict[str, Any]]:
        items = await asyncio.to_thread(incidents.store.get_active_maintenance)
        return [m.to_dict() for m in items]

    # -----------------
    # Probe ingestion
    # -----------------
    @app.post("/api/check", dependencies=[Depends(require_probe_key)])
    async def ingest_check(req: Request) -> Any:
        payload = await _json_body(req)
        try:
            report = ProbeReport.model_validate(payload)
        except ValidationError as exc:
            return _invalid("Invalid payload", _validation_details(exc))

        applied = 0
        for component_id, result in report.results.items():
            if aggregator.ingest(component_id, report.region, result.status):
                applied += 1
        return {"success": True, "applied": applied}

    # -----------------
    # Admin
    # -----------------
    @app.post("/api/admin/config", dependencies=[Depends(require_admin)])
    async def reload_config(req: Request) -> Any:
        payload = await _json_body(req)
        try:
            await asyncio.to_thread(reload_controller.apply, payload)
        except ConfigValidationError as exc:
            return _invalid("Invalid configuration", exc.errors)
        return {"success": True, "message": "Configuration saved and reloaded"}

    @app.post("/api/admin/incidents", dependencies=[Depends(require_admin)])
    async def create_incident(body: CreateIncidentRequest) -> dict[str, Any]:
        incident = await asyncio.to_thread(
            incidents.create_incident,
            body.component_id,
            body.title,
            body.status,
            body.description,
            body.update_text,
        )
        return {"success": True, "id": incident.id}

    @app.post("/api/admin/incidents/{incident_id}/update", dependencies=[Depends(require_admin)])
    async def update_incident(incident_id: int, body: IncidentUpdateRequest) -> dict[str, Any]:
        try:
            incident = await asyncio.to_thread(incidents.post_update, incident_id, body.update_text, body.status)
        except IncidentNotFoundError as exc:
            raise HTTPException(status_code=404, detail="incident_not_found") from exc
        return {"success": True, "incident": incident.to_dict()}

    @app.delete("/api/admin/incidents/{incident_id}", dependencies=[Depends(require_admin)])
    async def delete_incident(incident_id: int) -> dict[str, Any]:
        try:
            await asyncio.to_thread(incidents.delete_incident, incident_id)
        except IncidentNotFoundError as exc:
            raise HTTPException(status_code=404, detail="incident_not_found") from exc
        return {"success": True}

    @app.delete("/api/incidents/history/clear", dependencies=[Depends(require_admin)])
    async def clear_history() -> dict[str, Any]:
        await asyncio.to_thread(incidents.store.clear_resolved)
        return {"success": True, "message": "History cleared"}

    @app.post("/api/maintenance/schedule", dependencies=[Depends(require_admin)])
    async def schedule_maintenance(body: MaintenanceRequest) -> dict[str, Any]:
        if body.end_time <= body.start_time:
            return _invalid("Invalid payload", [{"loc": ["end_time"], "msg": "end_time must be after start_time"}])
        window = await asyncio.to_thread(
            lambda: incidents.store.schedule_maintenance(
                title=body.title,
                description=body.description,
                start_time=body.start_time,
                end_time=body.end_time,
                status=body.status,
            )
        )
        logger.info("Scheduled maintenance", maintenance_id=window.id, title=window.title)
        return {"success": True, "id": window.id, "message": "Maintenance scheduled"}

    @app.delete("/api/maintenance/{maintenance_id}", dependencies=[Depends(require_admin)])
    async def delete_maintenance(maintenance_id: int) -> dict[str, Any]:
        deleted = await asyncio.to_thread(incidents.store.delete_maintenance, maintenance_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="maintenance_not_found")
        return {"success": True, "message": "Maintenance deleted"}

    return app
