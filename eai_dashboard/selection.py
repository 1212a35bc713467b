"""
Cascading selection state machine.

The six selectors form a chain:

    country -> adm_level -> hazard -> period -> scenario -> exposure

A selector is enabled only while every selector before it in the active
chain holds a value. Choosing (or clearing) a value clears and disables
everything downstream, then enables and repopulates the next selector.
Period and scenario drop out of the chain for non-temporal dashboards, and
scenario drops out whenever the baseline period is chosen.

Every transition bumps ``epoch``; side effects (fetches) carry the epoch of
the transition that requested them so late results can be recognised as
stale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import (
    BASELINE_PERIOD,
    COUNTRIES,
    EXPOSURE_CATEGORIES,
    HAZARDS,
    PERIODS,
    SCENARIOS,
    CountryCapability,
    ExposureCategory,
)
from .errors import InvalidSelection

logger = logging.getLogger(__name__)

FIELDS: Tuple[str, ...] = ("country", "adm_level", "hazard", "period", "scenario", "exposure")


class Action(str, Enum):
    FETCH_BOUNDARY = "fetch_boundary"
    CLEAR_LAYER = "clear_layer"
    CLEAR_OVERLAY = "clear_overlay"
    LOAD_METRICS = "load_metrics"


@dataclass
class Selector:
    options: List[Dict[str, Any]] = field(default_factory=list)
    value: Any = None
    disabled: bool = True

    def values(self) -> List[Any]:
        return [o["value"] for o in self.options]

    def reset(self) -> None:
        self.options = []
        self.value = None
        self.disabled = True


@dataclass(frozen=True)
class Selection:
    country: Optional[str] = None
    adm_level: Optional[int] = None
    hazard: Optional[str] = None
    period: Optional[str] = None
    scenario: Optional[str] = None
    exposure: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Transition:
    """Result of one user selection: the side effect to run and its epoch."""
    epoch: int
    field: str
    value: Any
    action: Action
    selection: Selection
    boundary_level: Optional[int] = None


class SelectionStateMachine:
    def __init__(
        self,
        countries: Mapping[str, CountryCapability] = COUNTRIES,
        hazards: Mapping[str, str] = HAZARDS,
        exposures: Mapping[str, ExposureCategory] = EXPOSURE_CATEGORIES,
        periods: Sequence[str] = PERIODS,
        scenarios: Sequence[str] = SCENARIOS,
        baseline: str = BASELINE_PERIOD,
        temporal: bool = True,
    ):
        self.countries = dict(countries)
        self.hazards = dict(hazards)
        self.exposures = dict(exposures)
        self.periods = tuple(periods)
        self.scenarios = tuple(scenarios)
        self.baseline = baseline
        self.temporal = temporal
        self.epoch = 0
        self.selectors: Dict[str, Selector] = {f: Selector() for f in FIELDS}
        self._enable("country")

    # ----------------------
    # Views
    # ----------------------

    @property
    def selection(self) -> Selection:
        return Selection(**{f: self.selectors[f].value for f in FIELDS})

    @property
    def country(self) -> Optional[CountryCapability]:
        iso = self.selectors["country"].value
        return self.countries.get(iso) if iso else None

    @property
    def exposure_category(self) -> Optional[ExposureCategory]:
        code = self.selectors["exposure"].value
        return self.exposures.get(code) if code else None

    def chain(self) -> List[str]:
        """Selectors in play for the current period choice."""
        out = ["country", "adm_level", "hazard"]
        if self.temporal:
            out.append("period")
            if self.selectors["period"].value != self.baseline:
                out.append("scenario")
        out.append("exposure")
        return out

    def is_enabled(self, name: str) -> bool:
        return not self.selectors[name].disabled

    def is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {"options": list(s.options), "value": s.value, "disabled": s.disabled}
            for name, s in self.selectors.items()
        }

    # ----------------------
    # Option sources
    # ----------------------

    def options_for(self, name: str) -> List[Dict[str, Any]]:
        if name == "country":
            return [
                {"label": c.name, "value": c.iso_code}
                for c in sorted(self.countries.values(), key=lambda c: c.name)
            ]
        if name == "adm_level":
            return [{"label": f"ADM {i}", "value": i}
                    for i in range(1, self.country.max_adm_level + 1)]
        if name == "hazard":
            return [{"label": self.hazards.get(code, code), "value": code}
                    for code in self.country.hazard_codes]
        if name == "period":
            return [{"label": f"Baseline ({p})" if p == self.baseline else p, "value": p}
                    for p in self.periods]
        if name == "scenario":
            return [{"label": s, "value": s} for s in self.scenarios]
        if name == "exposure":
            return [{"label": c.label, "value": c.code} for c in self.exposures.values()]
        raise KeyError(name)

    def _enable(self, name: str) -> None:
        sel = self.selectors[name]
        sel.options = self.options_for(name)
        sel.value = None
        sel.disabled = False

    # ----------------------
    # Transitions
    # ----------------------

    def _cascade(self, name: str) -> None:
        """Clear and disable every selector after ``name``; enable the next
        one in the chain when ``name`` holds a value."""
        for downstream in FIELDS[FIELDS.index(name) + 1:]:
            self.selectors[downstream].reset()
        if self.selectors[name].value is None:
            return
        chain = self.chain()
        pos = chain.index(name) + 1
        if pos < len(chain):
            self._enable(chain[pos])

    def _validate(self, name: str, value: Any) -> Any:
        if name not in self.selectors:
            raise InvalidSelection(f"Unknown selector {name!r}")
        sel = self.selectors[name]
        if sel.disabled:
            raise InvalidSelection(f"Selector {name!r} is disabled")
        if value is None or value == "":
            return None
        if name == "adm_level":
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise InvalidSelection(f"ADM level must be an integer, got {value!r}") from None
        if value not in sel.values():
            raise InvalidSelection(f"{value!r} is not an option for {name!r}")
        return value

    def select(self, name: str, value: Any) -> Transition:
        """Apply one user selection and return the side effect it needs."""
        value = self._validate(name, value)
        self.selectors[name].value = value
        self._cascade(name)
        self.epoch += 1

        level = None
        if name == "country":
            action = Action.FETCH_BOUNDARY if value is not None else Action.CLEAR_LAYER
            level = 0
        elif name == "adm_level":
            action = Action.FETCH_BOUNDARY
            level = value if value is not None else 0
        elif name == "exposure" and value is not None:
            action = Action.LOAD_METRICS
        else:
            action = Action.CLEAR_OVERLAY

        logger.debug("epoch %d: %s=%r -> %s", self.epoch, name, value, action.value)
        return Transition(self.epoch, name, value, action, self.selection, level)

    def rollback(self, transition: Transition) -> bool:
        """Return to the state before ``transition``'s field was chosen.

        Only the current transition can be rolled back; older ones have
        already been superseded.
        """
        if not self.is_current(transition.epoch):
            return False
        sel = self.selectors[transition.field]
        if sel.value != transition.value:
            return False
        sel.value = None
        self._cascade(transition.field)
        logger.info("Rolled back %s=%r", transition.field, transition.value)
        return True
