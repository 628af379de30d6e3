"""Central aggregation of multi-region status and incident overrides."""

from .aggregator import Aggregator
from .reload import ConfigReloadController
from .state import ComponentState

__all__ = ["Aggregator", "ComponentState", "ConfigReloadController"]
