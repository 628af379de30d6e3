from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from ..history.recorder import DayRecord
from ..severity import Status, worst


@dataclass
class ComponentState:
    """Live status of one configured component, owned by the aggregator.

    All fields are guarded by ``lock``. ``retired`` is set once a configuration
    reload has replaced this object; writers that raced the swap must look the
    component up again instead of mutating a dead state.
    """

    component_id: str
    derived_status: Status = Status.OPERATIONAL
    region_status: dict[str, Status] = field(default_factory=dict)
    incident_override: Optional[Status] = None
    history: list[DayRecord] = field(default_factory=list)
    retired: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def region_derived(self) -> Status:
        return worst(self.region_status.values())

    def snapshot(self) -> dict[str, Any]:
        """Plain copy of the state. Caller must hold ``lock``."""
        return {
            "status": self.derived_status.value,
            "regions": {region: status.value for region, status in self.region_status.items()},
            "incident_override": self.incident_override.value if self.incident_override else None,
            "history": [record.to_dict() for record in self.history],
        }
