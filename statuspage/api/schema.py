from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from ..severity import Status


IncidentStatus = Literal["operational", "maintenance", "degraded", "outage", "resolved"]
MaintenanceStatus = Literal["scheduled", "in_progress", "completed"]


class ProbeResult(BaseModel):
    status: Status
    latency: float | None = Field(None, ge=0)
    error: str | None = None


class ProbeReport(BaseModel):
    region: str = Field(..., min_length=1, max_length=200)
    results: dict[str, ProbeResult]


class CreateIncidentRequest(BaseModel):
    component_id: str = Field(..., min_length=1, max_length=200)
    title: str = Field(..., min_length=1, max_length=500)
    status: IncidentStatus
    description: str = Field("", max_length=10_000)
    update_text: str = Field("", max_length=10_000)


class IncidentUpdateRequest(BaseModel):
    update_text: str = Field(..., min_length=1, max_length=10_000)
    status: IncidentStatus


class MaintenanceRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=500)
    description: str = Field(..., min_length=5, max_length=10_000)
    start_time: int = Field(..., ge=0)  # unix ms
    end_time: int = Field(..., ge=0)  # unix ms
    status: MaintenanceStatus = "scheduled"
