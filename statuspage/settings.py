from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    s = str(raw).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except ValueError:
        return int(default)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    s = str(raw).strip()
    return s if s else str(default)


@dataclass(frozen=True)
class Settings:
    host: str = field(default_factory=lambda: _env_str("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 3000))

    # Probe mode runs only the scheduler and reports to the central API.
    probe_mode: bool = field(default_factory=lambda: _env_bool("PROBE_MODE", False))
    region: str = field(default_factory=lambda: _env_str("REGION", "Local"))
    central_api_url: str = field(default_factory=lambda: _env_str("CENTRAL_API_URL", "http://localhost:3000"))

    # Shared secret sent by probes on /api/check.
    api_secret: str = field(default_factory=lambda: _env_str("API_SECRET", "dev-secret"))
    # Secret for admin endpoints (incidents, maintenance, config reload).
    admin_secret: str = field(default_factory=lambda: os.getenv("ADMIN_SECRET", "").strip())

    db_path: str = field(default_factory=lambda: _env_str("STATUS_DB_PATH", "data/status.db"))
    services_config_path: str = field(default_factory=lambda: _env_str("SERVICES_CONFIG_PATH", "config/services.yaml"))

    retention_days: int = field(default_factory=lambda: _env_int("RETENTION_DAYS", 365))
    # Trailing daily records kept per component in memory.
    history_days: int = field(default_factory=lambda: _env_int("HISTORY_DAYS", 90))

    log_level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: _env_str("LOG_FORMAT", "console"))
