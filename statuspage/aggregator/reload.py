from __future__ import annotations

import threading
from typing import Any, Callable, Optional

import structlog

from ..config import ServicesConfig, save_services_config, validate_services_config
from ..errors import ConfigValidationError
from .aggregator import Aggregator


logger = structlog.get_logger(__name__)


class ConfigReloadController:
    """Validates, persists and applies a new services configuration.

    A payload is fully validated before anything is written. If validation or the
    write fails, the previous file and the aggregator's live state stay untouched.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        config_path: str,
        *,
        listeners: Optional[list[Callable[[ServicesConfig], None]]] = None,
    ):
        self.aggregator = aggregator
        self.config_path = config_path
        self.listeners = list(listeners or [])
        self._lock = threading.Lock()

    def apply(self, payload: Any) -> ServicesConfig:
        try:
            config = validate_services_config(payload)
        except ConfigValidationError as exc:
            logger.warning("Rejected services configuration", errors=len(exc.errors))
            raise

        with self._lock:
            save_services_config(config, self.config_path)
            self.aggregator.reload_config(config)
            for listener in self.listeners:
                listener(config)

        logger.info("Services configuration saved and reloaded",
                    path=self.config_path,
                    components=len(config.component_ids()))
        return config
