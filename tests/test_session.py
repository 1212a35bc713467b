"""Session flow: cascade, fetch, epoch-gated resolve, rollback on failure."""

import pytest

from eai_dashboard.config import BASELINE_PERIOD, NO_DATA_COLOR
from eai_dashboard.errors import BoundaryUnavailable
from eai_dashboard.selection import Action
from eai_dashboard.session import APPLIED, FAILED, STALE, DashboardSession, SessionRegistry

from conftest import TEST_SOURCE, FakeBoundaryProvider, FakeMetricLoader


def drill_down(session, exposure=None, level=2):
    outcomes = [
        session.select("country", "NPL"),
        session.select("adm_level", level),
        session.select("hazard", "FL"),
        session.select("period", BASELINE_PERIOD),
    ]
    if exposure:
        outcomes.append(session.select("exposure", exposure))
    return outcomes


class TestHappyPath:
    def test_country_shows_outline(self, session, boundaries):
        outcome = session.select("country", "NPL")
        assert outcome.status == APPLIED
        assert session.controller.layer.level == 0
        assert boundaries.calls == [("NPL", 0)]

    def test_adm_level_replaces_layer(self, session):
        session.select("country", "NPL")
        session.select("adm_level", 2)
        layer = session.controller.layer
        assert layer.level == 2
        assert [f.key for f in layer.features] == ["NP.A.1", "NP.A.2", "NP.B.1", "NP.C.1"]

    def test_exposure_colours_map(self, session, loader):
        outcomes = drill_down(session, "POP")
        assert all(o.applied for o in outcomes)
        overlay = session.controller.overlay
        assert overlay.category.code == "POP"
        assert overlay.breakpoints == [5.0, 120.0]
        assert overlay.summary is not None
        assert overlay.total_eai == pytest.approx(125.0)
        assert loader.calls == [("NPL", 2, "FL", "POP", BASELINE_PERIOD, None)]

    def test_missing_units_reported_in_status(self, session):
        drill_down(session, "POP")
        assert session.status == "2/4 units without data."
        assert not session.status_is_error
        colours = {f.key: f.fill_color for f in session.controller.layer.features}
        assert colours["NP.B.1"] == NO_DATA_COLOR
        assert colours["NP.C.1"] == NO_DATA_COLOR

    def test_switching_exposure_recolours(self, session):
        drill_down(session, "POP")
        session.select("exposure", "BU")
        overlay = session.controller.overlay
        assert overlay.category.code == "BU"
        assert overlay.summary is None
        matched = {f.key for f in session.controller.layer.features if f.fill_opacity > 0}
        assert matched == {"NP.A.1", "NP.C.1"}

    def test_upstream_change_clears_overlay(self, session):
        drill_down(session, "POP")
        outcome = session.select("hazard", "LS")
        assert outcome.transition.action == Action.CLEAR_OVERLAY
        assert session.controller.overlay is None
        assert all(f.fill_opacity == 0 for f in session.controller.layer.features)

    def test_clearing_country_removes_layer(self, session):
        drill_down(session, "POP")
        outcome = session.select("country", None)
        assert outcome.applied
        assert session.controller.layer is None
        assert session.controller.overlay is None

    def test_clearing_adm_level_returns_to_outline(self, session, boundaries):
        session.select("country", "NPL")
        session.select("adm_level", 1)
        session.select("adm_level", None)
        assert session.controller.layer.level == 0
        assert boundaries.calls[-1] == ("NPL", 0)


class TestStaleResults:
    def test_late_boundary_result_is_discarded(self, session, boundaries):
        session.select("country", "NPL")
        slow = session.begin("adm_level", 1)
        slow_payload = session.fetch(slow)
        fast = session.begin("adm_level", 2)
        assert session.resolve(fast, session.fetch(fast)).status == APPLIED

        assert session.resolve(slow, slow_payload).status == STALE
        assert session.controller.layer.level == 2
        assert session.current_value("adm_level") == 2

    def test_metrics_arriving_after_upstream_change(self, session):
        drill_down(session)
        pending = session.begin("exposure", "POP")
        batch = session.fetch(pending)
        session.select("hazard", "LS")

        assert session.resolve(pending, batch).status == STALE
        assert session.controller.overlay is None
        assert session.current_value("exposure") is None

    def test_stale_failure_does_not_roll_back(self, session):
        session.select("country", "NPL")
        pending = session.begin("adm_level", 1)
        session.select("adm_level", 2)
        outcome = session.resolve(pending, error=BoundaryUnavailable("offline"))
        assert outcome.status == STALE
        assert session.current_value("adm_level") == 2
        assert session.status == ""


class TestFailures:
    def test_missing_country_outline_rolls_back_country(self, loader):
        session = DashboardSession(FakeBoundaryProvider(), loader, TEST_SOURCE)
        outcome = session.select("country", "NPL")
        assert outcome.status == FAILED
        assert session.current_value("country") is None
        assert not session.machine.is_enabled("adm_level")
        assert session.controller.layer is None
        assert session.status_is_error
        assert "NPL" in session.status

    def test_missing_level_rolls_back_level(self, session):
        session.select("country", "NPL")
        outcome = session.select("adm_level", 3)
        assert outcome.status == FAILED
        assert session.current_value("adm_level") is None
        assert session.machine.is_enabled("adm_level")
        assert not session.machine.is_enabled("hazard")

    def test_missing_level_restores_country_outline(self, session, boundaries):
        session.select("country", "NPL")
        session.select("adm_level", 1)
        outcome = session.select("adm_level", 3)

        assert outcome.status == FAILED
        assert session.current_value("country") == "NPL"
        assert session.controller.layer.level == 0
        assert boundaries.calls[-2:] == [("NPL", 3), ("NPL", 0)]
        assert session.status_is_error
        assert "ADM3" in session.status

    def test_outline_unavailable_after_failed_level(self, session, boundaries):
        session.select("country", "NPL")
        del boundaries.payloads[("NPL", 0)]
        session.select("adm_level", 3)

        assert boundaries.calls == [("NPL", 0), ("NPL", 3), ("NPL", 0)]
        assert session.controller.layer is None
        assert session.current_value("country") == "NPL"
        assert session.machine.is_enabled("adm_level")
        assert "ADM0" in session.status

    def test_malformed_boundaries_fail(self, loader):
        provider = FakeBoundaryProvider({("NPL", 0): {"type": "FeatureCollection", "features": []}})
        session = DashboardSession(provider, loader, TEST_SOURCE)
        assert session.select("country", "NPL").status == FAILED
        assert session.current_value("country") is None

    def test_metric_failure_keeps_layer(self, boundaries):
        session = DashboardSession(boundaries, FakeMetricLoader(), TEST_SOURCE)
        drill_down(session)
        outcome = session.select("exposure", "AGR")
        assert outcome.status == FAILED
        assert "AGR" in outcome.message
        assert session.current_value("exposure") is None
        assert session.machine.is_enabled("exposure")
        assert session.controller.layer.level == 2
        assert session.controller.overlay is None

    def test_next_selection_clears_error(self, session):
        session.select("country", "NPL")
        session.select("adm_level", 3)
        assert session.status_is_error
        session.select("adm_level", 1)
        assert session.status == ""
        assert not session.status_is_error


class TestRegistry:
    def test_same_id_same_session(self):
        registry = SessionRegistry(object)
        assert registry.get("a") is registry.get("a")
        assert registry.get("a") is not registry.get("b")
        assert len(registry) == 2

    def test_least_recently_used_evicted(self):
        registry = SessionRegistry(object, max_sessions=2)
        a = registry.get("a")
        registry.get("b")
        registry.get("a")
        registry.get("c")
        assert len(registry) == 2
        assert registry.get("a") is a
        assert registry.get("b") is not None
        assert len(registry) == 2

    def test_new_ids_are_unique(self):
        assert SessionRegistry.new_id() != SessionRegistry.new_id()
