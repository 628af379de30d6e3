"""Configuration of the monitored component set."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterator, Optional

import structlog
import yaml
from pydantic import BaseModel, Field, RootModel, ValidationError, field_validator, model_validator

from .errors import ConfigValidationError


logger = structlog.get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 30.0
DEFAULT_TIMEOUT_MS = 10_000.0


class ProbeConfig(BaseModel):
    """Outbound request settings for one component's health check."""
    method: str = Field(default="GET", description="HTTP method")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    body: Any = Field(default=None, description="Request body; mappings and lists are sent as JSON")
    expected_status: Optional[int] = Field(default=None, description="Informational only, not used for classification")
    timeout: float = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description="Request timeout in milliseconds")

    @field_validator("headers")
    @classmethod
    def _ascii_headers(cls, headers: dict[str, str]) -> dict[str, str]:
        for name, value in headers.items():
            if not name.isascii() or not value.isascii():
                raise ValueError(f"header {name!r} must contain only ASCII characters")
        return headers


class ServiceEntry(BaseModel):
    """A single monitored component."""
    id: str = Field(..., min_length=1)
    name: str
    url: Optional[str] = Field(default=None, description="Probe target; entries without one are never probed")
    interval: Optional[float] = Field(default=None, gt=0, description="Check interval in seconds")
    probe_config: Optional[ProbeConfig] = None

    @property
    def interval_seconds(self) -> float:
        return float(self.interval or DEFAULT_INTERVAL_SECONDS)

    @property
    def timeout_seconds(self) -> float:
        timeout_ms = self.probe_config.timeout if self.probe_config else DEFAULT_TIMEOUT_MS
        return float(timeout_ms) / 1000.0

    @property
    def probed(self) -> bool:
        return bool((self.url or "").strip())


class ServiceGroup(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    services: list[ServiceEntry] = Field(default_factory=list)


class ServicesConfig(RootModel[list[ServiceGroup]]):
    """Ordered groups of components. Component ids are unique across all groups."""

    @model_validator(mode="after")
    def _unique_component_ids(self) -> "ServicesConfig":
        seen: set[str] = set()
        duplicates: list[str] = []
        for group in self.root:
            for service in group.services:
                if service.id in seen and service.id not in duplicates:
                    duplicates.append(service.id)
                seen.add(service.id)
        if duplicates:
            raise ValueError(f"duplicate component id(s): {', '.join(duplicates)}")
        return self

    @property
    def groups(self) -> list[ServiceGroup]:
        return self.root

    def components(self) -> Iterator[tuple[ServiceGroup, ServiceEntry]]:
        for group in self.root:
            for service in group.services:
                yield group, service

    def component_ids(self) -> list[str]:
        return [service.id for _group, service in self.components()]

    def get(self, component_id: str) -> Optional[ServiceEntry]:
        for _group, service in self.components():
            if service.id == component_id:
                return service
        return None

    def to_payload(self) -> list[dict[str, Any]]:
        return self.model_dump(mode="json", exclude_none=True)


def validate_services_config(payload: Any) -> ServicesConfig:
    """Validate a raw payload, reporting every violation in one error."""
    try:
        return ServicesConfig.model_validate(payload)
    except ValidationError as exc:
        errors = [
            {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": str(err.get("type", ""))}
            for err in exc.errors()
        ]
        raise ConfigValidationError(errors) from exc


def load_services_config(config_path: Optional[str] = None) -> ServicesConfig:
    """Load and validate the services configuration from YAML (or JSON)."""
    if config_path is None:
        config_path = os.getenv("SERVICES_CONFIG_PATH", "config/services.yaml")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    config = validate_services_config(data if data is not None else [])
    logger.info("Loaded services configuration",
                path=str(config_path),
                groups=len(config.groups),
                components=len(config.component_ids()))
    return config


def save_services_config(config: ServicesConfig, config_path: str) -> None:
    """Write the configuration atomically so readers never see a partial file."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    tmp.write_text(
        yaml.safe_dump(config.to_payload(), sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    tmp.replace(path)
