"""
Per-tab dashboard session: state machine + layer controller + collaborators.

A selection runs in three steps:

    begin()    synchronous cascade; bumps the epoch, clears stale overlay
    fetch()    blocking I/O (boundary geometry or metric workbook)
    resolve()  applies the result only if its epoch is still current

Dash serves callbacks from a threaded server, so begin/resolve are
serialised with a lock. The lock is never held across fetch().
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .config import MAX_SESSIONS, BoundarySource, get_boundary_source
from .errors import BoundaryUnavailable, MetricLoadError
from .join import AdminKey
from .layers import MapLayerController
from .providers import BoundaryProvider, ExcelMetricLoader, MetricBatch, make_boundary_provider
from .selection import Action, SelectionStateMachine, Transition

logger = logging.getLogger(__name__)

APPLIED = "applied"
STALE = "stale"
FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    status: str
    transition: Transition
    message: str = ""

    @property
    def applied(self) -> bool:
        return self.status == APPLIED


class DashboardSession:
    def __init__(
        self,
        boundary_provider: BoundaryProvider,
        metric_loader: ExcelMetricLoader,
        source: BoundarySource,
        machine: Optional[SelectionStateMachine] = None,
        controller: Optional[MapLayerController] = None,
    ):
        self.boundary_provider = boundary_provider
        self.metric_loader = metric_loader
        self.source = source
        self.key = AdminKey.from_source(source)
        self.machine = machine or SelectionStateMachine()
        self.controller = controller or MapLayerController()
        self.status = ""
        self.status_is_error = False
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, source_name: Optional[str] = None, **kwargs) -> "DashboardSession":
        source = get_boundary_source(source_name)
        return cls(make_boundary_provider(source), ExcelMetricLoader(), source, **kwargs)

    def current_value(self, field: str) -> Any:
        return self.machine.selectors[field].value

    def _set_status(self, message: str, error: bool = False) -> None:
        self.status = message
        self.status_is_error = error

    # ----------------------
    # Three-step selection
    # ----------------------

    def begin(self, field: str, value: Any) -> Transition:
        with self._lock:
            transition = self.machine.select(field, value)
            # every transition clears or replaces the exposure overlay
            self.controller.clear_overlay()
            if transition.action == Action.CLEAR_LAYER:
                self.controller.clear()
            self._set_status("")
            return transition

    def fetch(self, transition: Transition) -> Any:
        sel = transition.selection
        if transition.action == Action.FETCH_BOUNDARY:
            payload = self.boundary_provider.fetch(sel.country, transition.boundary_level)
            if payload is None:
                raise BoundaryUnavailable(
                    f"Boundary data unavailable for {sel.country} ADM{transition.boundary_level}"
                )
            return payload
        if transition.action == Action.LOAD_METRICS:
            category = self.machine.exposures[sel.exposure]
            return self.metric_loader.load(
                sel.country, sel.adm_level, sel.hazard, category,
                period=sel.period, scenario=sel.scenario,
                key_column=self.key.row_field(sel.adm_level),
            )
        return None

    def resolve(self, transition: Transition, payload: Any = None,
                error: Optional[Exception] = None) -> Outcome:
        with self._lock:
            if not self.machine.is_current(transition.epoch):
                logger.debug("Discarding stale result for epoch %d (current %d)",
                             transition.epoch, self.machine.epoch)
                return Outcome(STALE, transition)

            if error is not None:
                return self._fail(transition, str(error))

            if transition.action == Action.FETCH_BOUNDARY:
                if not self.controller.replace(payload, transition.boundary_level, self.key):
                    return self._fail(transition, f"No usable boundaries for "
                                                  f"{transition.selection.country} "
                                                  f"ADM{transition.boundary_level}")
            elif transition.action == Action.LOAD_METRICS:
                batch: MetricBatch = payload
                category = self.machine.exposures[transition.selection.exposure]
                overlay = self.controller.apply_overlay(batch.rows, category, batch.summary)
                if overlay is None:
                    return self._fail(transition, "No boundary layer to colour")
                self._set_status(overlay.report.missing_note)
            return Outcome(APPLIED, transition)

    def _fail(self, transition: Transition, message: str) -> Outcome:
        logger.warning("Selection %s=%r failed: %s", transition.field, transition.value, message)
        if transition.action == Action.FETCH_BOUNDARY:
            self.controller.clear()
        else:
            self.controller.clear_overlay()
        self.machine.rollback(transition)
        self._set_status(message, error=True)
        return Outcome(FAILED, transition, message)

    def _run(self, transition: Transition) -> Outcome:
        try:
            payload = self.fetch(transition)
        except (BoundaryUnavailable, MetricLoadError) as exc:
            return self.resolve(transition, error=exc)
        return self.resolve(transition, payload)

    def _restore_outline(self, failed: Outcome) -> None:
        """Put the ADM0 outline back after an ADM level failed to load;
        the error from the failed level stays in the status line."""
        with self._lock:
            if not self.machine.is_current(failed.transition.epoch):
                return
            transition = self.machine.select("adm_level", None)
        self._run(transition)

    def select(self, field: str, value: Any) -> Outcome:
        transition = self.begin(field, value)
        outcome = self._run(transition)
        if outcome.status == FAILED and field == "adm_level" and transition.value is not None:
            self._restore_outline(outcome)
        return outcome


class SessionRegistry:
    """One session per browser tab, least recently used evicted first."""

    def __init__(self, factory: Callable[[], DashboardSession], max_sessions: int = MAX_SESSIONS):
        self.factory = factory
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, DashboardSession]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    def get(self, session_id: str) -> DashboardSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = self.factory()
                self._sessions[session_id] = session
                while len(self._sessions) > self.max_sessions:
                    evicted, _ = self._sessions.popitem(last=False)
                    logger.debug("Evicted session %s", evicted)
            else:
                self._sessions.move_to_end(session_id)
            return session

    def __len__(self) -> int:
        return len(self._sessions)
