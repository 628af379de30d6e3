from __future__ import annotations

import hmac
from typing import Any

from fastapi import Depends, HTTPException, Request

from ..settings import Settings


API_KEY_HEADER = "x-api-key"
ADMIN_KEY_HEADER = "x-admin-key"


def get_settings(req: Request) -> Settings:
    settings: Any = getattr(req.app.state, "settings", None)
    if not isinstance(settings, Settings):
        raise RuntimeError("Settings not configured")
    return settings


def _secret_matches(provided: str, expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.strip().encode("utf-8"), expected.strip().encode("utf-8"))


def require_probe_key(req: Request, settings: Settings = Depends(get_settings)) -> None:
    if not _secret_matches(req.headers.get(API_KEY_HEADER) or "", settings.api_secret):
        raise HTTPException(status_code=403, detail="Unauthorized")


def require_admin(req: Request, settings: Settings = Depends(get_settings)) -> None:
    if not settings.admin_secret:
        raise HTTPException(status_code=503, detail="admin_secret_not_configured")
    if not _secret_matches(req.headers.get(ADMIN_KEY_HEADER) or "", settings.admin_secret):
        raise HTTPException(status_code=403, detail="Unauthorized")
