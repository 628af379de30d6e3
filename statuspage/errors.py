"""Exception types raised by the status engine."""

from __future__ import annotations

from typing import Any


class StatusPageError(Exception):
    """Base class for status engine errors."""


class ConfigValidationError(StatusPageError):
    """A services configuration payload failed validation.

    ``errors`` lists every violation as ``{"loc": ..., "msg": ...}`` so callers can
    report them all at once.
    """

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        summary = "; ".join(f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors[:5])
        super().__init__(f"Invalid services configuration ({len(errors)} error(s)): {summary}")


class IncidentNotFoundError(StatusPageError):
    pass
