"""Central per-component status state machine."""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterator, Optional

import structlog

from ..config import ServicesConfig
from ..history.recorder import DEFAULT_HISTORY_LIMIT, DayRecord, HistoryRecorder, utc_today
from ..severity import Status, normalize_override, outranks
from .state import ComponentState


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _LiveSet:
    config: ServicesConfig
    states: dict[str, ComponentState]


class Aggregator:
    """Merges region reports and incident overrides into one status per component.

    Mutations of a single component (region map update, recalculation, scheduling
    of the history write) run under that component's lock; different components
    never contend. History writes are handed to a background executor so callers
    observe the new in-memory status without waiting on the database.
    """

    def __init__(
        self,
        config: ServicesConfig,
        recorder: Optional[HistoryRecorder] = None,
        *,
        executor: Optional[Executor] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        today: Optional[Callable[[], date]] = None,
    ):
        self.recorder = recorder
        self.history_limit = max(1, int(history_limit))
        self.today = today or (recorder.today if recorder else utc_today)
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="history-writer")
        self._owns_executor = executor is None
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self._reload_lock = threading.Lock()
        self._live = _LiveSet(config=config, states=self._build_states(config))
        logger.info("Aggregator initialized", components=len(self._live.states))

    @staticmethod
    def _build_states(config: ServicesConfig) -> dict[str, ComponentState]:
        return {service.id: ComponentState(component_id=service.id) for _group, service in config.components()}

    @property
    def config(self) -> ServicesConfig:
        return self._live.config

    def component_ids(self) -> list[str]:
        return list(self._live.states)

    @contextmanager
    def _locked(self, component_id: str) -> Iterator[Optional[ComponentState]]:
        """Yield the live state for ``component_id`` with its lock held, or None."""
        while True:
            state = self._live.states.get(component_id)
            if state is None:
                yield None
                return
            state.lock.acquire()
            if not state.retired:
                break
            state.lock.release()
        try:
            yield state
        finally:
            state.lock.release()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def ingest(self, component_id: str, region: str, status: str | Status) -> bool:
        """Record one region's view of a component. Unknown ids are ignored."""
        status = Status(status)
        with self._locked(component_id) as state:
            if state is None:
                logger.debug("Ignoring report for unknown component", component_id=component_id, region=region)
                return False
            state.region_status[region] = status
            self._recalculate_locked(state)
            return True

    def set_incident_override(self, component_id: str, status: str | Status | None) -> bool:
        """Set or clear (``None``/``resolved``) the incident override."""
        override = normalize_override(status)
        with self._locked(component_id) as state:
            if state is None:
                logger.debug("Ignoring override for unknown component", component_id=component_id)
                return False
            state.incident_override = override
            self._recalculate_locked(state)
            return True

    def recalculate(self, component_id: str) -> bool:
        """Recompute the derived status. Returns True if it changed."""
        with self._locked(component_id) as state:
            if state is None:
                return False
            return self._recalculate_locked(state)

    def _recalculate_locked(self, state: ComponentState) -> bool:
        region_derived = state.region_derived()
        override = state.incident_override
        final = override if outranks(override, region_derived) else region_derived

        if final == state.derived_status:
            return False

        logger.info("Status changed",
                    component_id=state.component_id,
                    old=state.derived_status.value,
                    new=final.value,
                    regions=region_derived.value,
                    incident=override.value if override else None)
        state.derived_status = final
        self._merge_today(state, final)
        self._persist(state.component_id, final)
        return True

    def _merge_today(self, state: ComponentState, status: Status) -> None:
        today = self.today()
        head = state.history[0] if state.history else None
        if head is not None and head.day == today:
            if outranks(status, head.status):
                state.history[0] = DayRecord(day=today, component_id=state.component_id,
                                             status=status, uptime_pct=head.uptime_pct)
            return
        state.history.insert(0, DayRecord(day=today, component_id=state.component_id, status=status))
        del state.history[self.history_limit:]

    def _persist(self, component_id: str, status: Status) -> None:
        if self.recorder is None:
            return
        future = self._executor.submit(self._write_history, component_id, status)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)

    def _discard_pending(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _write_history(self, component_id: str, status: Status) -> None:
        try:
            self.recorder.record_observation(component_id, status)
        except Exception:
            # The day's row catches up on the next status change.
            logger.error("Failed to persist status history",
                         component_id=component_id,
                         status=status.value,
                         exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_component(self, component_id: str) -> Optional[dict[str, Any]]:
        with self._locked(component_id) as state:
            if state is None:
                return None
            return state.snapshot()

    def derived_status(self, component_id: str) -> Optional[Status]:
        with self._locked(component_id) as state:
            return state.derived_status if state is not None else None

    def get_all_status(self) -> dict[str, Any]:
        """Snapshot grouped by configured group order."""
        live = self._live
        response: dict[str, Any] = {}
        for group in live.config.groups:
            group_data: dict[str, Any] = {"id": group.id, "name": group.name, "services": []}
            for service in group.services:
                state = live.states.get(service.id)
                if state is None:
                    continue
                with state.lock:
                    snap = state.snapshot()
                group_data["services"].append({
                    "id": service.id,
                    "name": service.name,
                    "url": service.url,
                    "status": snap["status"],
                    "regions": snap["regions"],
                    "history": snap["history"],
                })
            response[group.id] = group_data
        return response

    # ------------------------------------------------------------------
    # Configuration and lifecycle
    # ------------------------------------------------------------------

    def reload_config(self, new_config: ServicesConfig) -> None:
        """Swap the component set, carrying status and history for surviving ids.

        Region maps and incident overrides start empty: regions must report again
        under the new configuration. Every old state is locked for the duration
        of the swap, so no caller sees a mix of old and new.
        """
        with self._reload_lock:
            old = self._live
            new_states = self._build_states(new_config)
            held = [old.states[k] for k in sorted(old.states)]
            for state in held:
                state.lock.acquire()
            try:
                carried = 0
                for component_id, fresh in new_states.items():
                    prev = old.states.get(component_id)
                    if prev is None:
                        continue
                    fresh.derived_status = prev.derived_status
                    fresh.history = list(prev.history)
                    carried += 1
                for state in held:
                    state.retired = True
                self._live = _LiveSet(config=new_config, states=new_states)
            finally:
                for state in held:
                    state.lock.release()

        removed = sorted(set(old.states) - set(new_states))
        logger.info("Aggregator configuration reloaded",
                    components=len(new_states),
                    carried_forward=carried,
                    removed=removed)

    def hydrate_history(self) -> None:
        """Seed today's row for every component and load trailing history."""
        if self.recorder is None:
            return
        for component_id in self.component_ids():
            try:
                # Never downgrades an existing row for today.
                self.recorder.record_observation(component_id, Status.OPERATIONAL)
                history = self.recorder.get_history(component_id, self.history_limit)
            except Exception:
                logger.error("Failed to hydrate history", component_id=component_id, exc_info=True)
                continue
            with self._locked(component_id) as state:
                if state is not None:
                    state.history = history
        logger.info("History hydrated", components=len(self.component_ids()))

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for history writes submitted so far."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.flush()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
