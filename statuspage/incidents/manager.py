"""Incident lifecycle management feeding the aggregator's override path."""

import structlog

from ..aggregator import Aggregator
from ..severity import RESOLVED
from .store import Incident, IncidentStore


logger = structlog.get_logger(__name__)


class IncidentManager:
    """Creates and updates incidents and keeps component overrides in step.

    The manager never sends notifications; subscriber fan-out belongs to whoever
    calls it.
    """

    def __init__(self, store: IncidentStore, aggregator: Aggregator):
        self.store = store
        self.aggregator = aggregator

    def create_incident(
        self,
        component_id: str,
        title: str,
        status: str,
        description: str = "",
        update_text: str = "",
    ) -> Incident:
        """Open a new incident and raise the component's override."""
        incident = self.store.create_incident(
            component_id=component_id,
            title=title,
            status=status,
            description=description,
            update_text=update_text,
        )
        if status != RESOLVED:
            self.aggregator.set_incident_override(component_id, status)

        logger.info("Created incident",
                    incident_id=incident.id,
                    component_id=component_id,
                    status=status)
        return incident

    def post_update(self, incident_id: int, message: str, status: str) -> Incident:
        """Append an update; a ``resolved`` status clears the override."""
        incident = self.store.post_update(incident_id, message=message, status=status)
        self.aggregator.set_incident_override(incident.component_id, status)

        logger.info("Posted incident update",
                    incident_id=incident_id,
                    component_id=incident.component_id,
                    status=status)
        return incident

    def delete_incident(self, incident_id: int) -> Incident:
        incident = self.store.delete_incident(incident_id)
        if not incident.resolved:
            # Fall back to the newest incident still open on the component, if any.
            remaining = [i for i in self.store.get_open_incidents() if i.component_id == incident.component_id]
            self.aggregator.set_incident_override(incident.component_id, remaining[0].status if remaining else None)
        logger.info("Deleted incident", incident_id=incident_id, component_id=incident.component_id)
        return incident

    def sync_open_incidents(self) -> int:
        """Re-apply overrides for every open incident, e.g. after a restart."""
        incidents = self.store.get_open_incidents()
        applied = 0
        # Oldest first so the newest incident's status wins for a component.
        for incident in reversed(incidents):
            if self.aggregator.set_incident_override(incident.component_id, incident.status):
                applied += 1
        logger.info("Synced active incidents", open=len(incidents), applied=applied)
        return applied

    def get_open_incidents(self) -> list[Incident]:
        return self.store.get_open_incidents()

    def get_incident(self, incident_id: int) -> Incident:
        return self.store.get_incident(incident_id)
