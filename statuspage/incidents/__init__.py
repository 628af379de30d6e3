"""Incident and maintenance window management."""

from .manager import IncidentManager
from .store import Incident, IncidentStore, IncidentUpdate, MaintenanceWindow

__all__ = ["Incident", "IncidentManager", "IncidentStore", "IncidentUpdate", "MaintenanceWindow"]
