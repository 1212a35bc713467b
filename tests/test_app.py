"""Tests for the Dash page: selection handling, rendered state and layout."""

import dash

from app import SELECTOR_IDS, build_layout, create_app, handle_selection, render_state
from eai_dashboard.config import BASELINE_PERIOD
from eai_dashboard.selection import FIELDS
from eai_dashboard.session import APPLIED, SessionRegistry


def component_ids(component):
    found = set()
    stack = [component]
    while stack:
        node = stack.pop()
        if isinstance(node, (list, tuple)):
            stack.extend(node)
            continue
        cid = getattr(node, "id", None)
        if cid is not None:
            found.add(cid)
        children = getattr(node, "children", None)
        if children is not None and not isinstance(children, str):
            stack.append(children)
    return found


class TestHandleSelection:
    def test_applies_new_value(self, session):
        outcome = handle_selection(session, "country", "NPL")
        assert outcome.status == APPLIED

    def test_echo_is_ignored(self, session, boundaries):
        handle_selection(session, "country", "NPL")
        assert handle_selection(session, "country", "NPL") is None
        assert len(boundaries.calls) == 1

    def test_empty_string_on_cleared_selector_is_echo(self, session):
        assert handle_selection(session, "country", "") is None

    def test_invalid_value_is_ignored(self, session):
        assert handle_selection(session, "hazard", "FL") is None
        assert session.machine.epoch == 0


class TestRenderState:
    def test_initial_state(self, session):
        state = render_state(session)
        n = len(FIELDS)
        assert len(state) == 3 * n + 5
        values = state[n:2 * n]
        disabled = state[2 * n:3 * n]
        assert values == tuple([None] * n)
        assert disabled == tuple([False] + [True] * (n - 1))
        assert state[-1] == "status-note"

    def test_after_exposure(self, session):
        for field, value in [("country", "NPL"), ("adm_level", 2), ("hazard", "FL"),
                             ("period", BASELINE_PERIOD), ("exposure", "POP")]:
            handle_selection(session, field, value)
        state = render_state(session, "dark")
        n = len(FIELDS)
        fig, legend, curve, status, status_class = state[3 * n:]
        assert state[n + FIELDS.index("exposure")] == "POP"
        assert fig.layout.map.style == "carto-darkmatter"
        assert legend.children[0].children == "Population EAI (people)"
        assert len(curve.data) == 1
        assert status == "2/4 units without data."
        assert status_class == "status-note"

    def test_error_status_class(self, session):
        handle_selection(session, "country", "NPL")
        handle_selection(session, "adm_level", 3)
        assert render_state(session)[-1] == "status-error"


class TestLayout:
    def test_layout_has_every_component(self):
        ids = component_ids(build_layout("abc"))
        expected = set(SELECTOR_IDS.values()) | {
            "basemap-dd", "status", "map", "legend", "risk-curve", "session-id",
        }
        assert expected <= ids

    def test_create_app_gives_each_page_load_a_session(self, session):
        registry = SessionRegistry(lambda: session)
        app = create_app(registry=registry)
        assert isinstance(app, dash.Dash)
        first, second = app.layout(), app.layout()
        store_a = [c for c in first.children if getattr(c, "id", None) == "session-id"][0]
        store_b = [c for c in second.children if getattr(c, "id", None) == "session-id"][0]
        assert store_a.data != store_b.data
