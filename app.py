"""
EAI Risk Dashboard (Dash)
- Cascading selectors: country -> ADM level -> hazard -> period -> scenario -> exposure
- Boundaries: local GADM-style GeoJSON or the World Bank ArcGIS service
- Metrics: per-country Excel workbooks, one sheet per exposure category
- Map colours: natural-breaks classes of Expected Annual Impact (EAI)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import dash
from dash import dcc, html, Input, Output, State

from eai_dashboard.config import BASEMAPS, DEFAULT_BASEMAP, configure_logging
from eai_dashboard.errors import InvalidSelection
from eai_dashboard.figures import make_map_figure, make_risk_curve
from eai_dashboard.legend import build_legend, legend_title, render_legend
from eai_dashboard.selection import FIELDS, SelectionStateMachine
from eai_dashboard.session import DashboardSession, Outcome, SessionRegistry, STALE

logger = logging.getLogger(__name__)


# ======================
# Config / Component ids
# ======================

SELECTOR_IDS: Dict[str, str] = {
    "country": "country-dd",
    "adm_level": "adm-dd",
    "hazard": "hazard-dd",
    "period": "period-dd",
    "scenario": "scenario-dd",
    "exposure": "exposure-dd",
}
FIELD_BY_ID = {v: k for k, v in SELECTOR_IDS.items()}

SELECTOR_LABELS: Dict[str, str] = {
    "country": "Country",
    "adm_level": "Admin level",
    "hazard": "Hazard",
    "period": "Period",
    "scenario": "Scenario",
    "exposure": "Exposure",
}

PANEL_STYLE = {"background": "#fff", "borderRadius": "12px", "boxShadow": "0 2px 12px #0001"}


# ======================
# Selection handling
# ======================

def handle_selection(session: DashboardSession, field: str, value: Any) -> Optional[Outcome]:
    """
    Run one user selection through the session.

    Returns None when nothing changed (echo of a value this page already
    holds, or a value the state machine rejects).
    """
    if value == "":
        value = None
    if session.current_value(field) == value:
        return None
    try:
        return session.select(field, value)
    except InvalidSelection as exc:
        logger.info("Ignoring selection %s=%r: %s", field, value, exc)
        return None


def render_state(session: DashboardSession, basemap: str = DEFAULT_BASEMAP) -> Tuple:
    """
    Everything the page shows, derived from session state:
    options / values / disabled flags for each selector, map, legend,
    risk curve, status text and status class.
    """
    snap = session.machine.snapshot()
    options = [snap[f]["options"] for f in FIELDS]
    values = [snap[f]["value"] for f in FIELDS]
    disabled = [snap[f]["disabled"] for f in FIELDS]

    controller = session.controller
    overlay = controller.overlay
    fig = make_map_figure(controller.layer, overlay, controller.viewport, basemap)

    if overlay is not None:
        legend = render_legend(overlay.legend, legend_title(overlay.category))
        curve = make_risk_curve(overlay.summary, overlay.category, overlay.total_eai)
    else:
        legend = render_legend(build_legend([]), legend_title(None))
        curve = make_risk_curve(None, None)

    status_class = "status-error" if session.status_is_error else "status-note"
    return (*options, *values, *disabled, fig, legend, curve, session.status, status_class)


# ======================
# Layout
# ======================

def _selector(field: str, machine: SelectionStateMachine) -> html.Div:
    sel = machine.selectors[field]
    return html.Div([
        html.Label(SELECTOR_LABELS[field], style={"fontWeight": 600, "fontSize": "14px"}),
        dcc.Dropdown(
            id=SELECTOR_IDS[field],
            options=sel.options,
            value=sel.value,
            disabled=sel.disabled,
            clearable=True,
            placeholder=f"Select {SELECTOR_LABELS[field].lower()}…",
            style={"width": 190, "fontSize": "14px"},
        ),
    ], style={"display": "flex", "flexDirection": "column", "gap": "4px"})


def build_layout(session_id: str, temporal: bool = True) -> html.Div:
    """Construct the page for one browser tab."""
    machine = SelectionStateMachine(temporal=temporal)

    controls = html.Div([
        html.P("Pick a country, then work down the chain. Each choice unlocks the next selector.",
               className="lead",
               style={"margin": "0 0 12px 0", "fontSize": "15px", "paddingBottom": "10px",
                      "borderBottom": "1px solid #e5e7eb"}),
        html.Div([_selector(f, machine) for f in FIELDS] + [
            html.Div([
                html.Label("Base map", style={"fontWeight": 600, "fontSize": "14px"}),
                dcc.Dropdown(
                    id="basemap-dd",
                    options=[{"label": v["label"], "value": k} for k, v in BASEMAPS.items()],
                    value=DEFAULT_BASEMAP,
                    clearable=False,
                    style={"width": 160, "fontSize": "14px"},
                ),
            ], style={"display": "flex", "flexDirection": "column", "gap": "4px"}),
        ], style={"display": "flex", "alignItems": "flex-end", "gap": "12px", "flexWrap": "wrap"}),
        html.Div(id="status", className="status-note",
                 style={"marginTop": "10px", "color": "#555", "fontSize": "14px"}),
    ], style={**PANEL_STYLE, "marginBottom": "12px", "padding": "14px 10px"})

    map_panel = html.Div([
        dcc.Loading(
            id="map-loading",
            type="dot",
            children=dcc.Graph(id="map", style={"height": "64vh"}),
            fullscreen=False,
        ),
        html.Div(id="legend", style={
            "position": "absolute", "right": "12px", "bottom": "24px",
            "background": "rgba(255,255,255,0.92)", "padding": "10px 12px",
            "borderRadius": "8px", "boxShadow": "0 2px 8px #0002",
        }),
    ], style={**PANEL_STYLE, "position": "relative", "overflow": "hidden"})

    return html.Div(
        style={"fontFamily": "Inter, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial, sans-serif",
               "margin": "0 auto", "maxWidth": "1200px", "padding": "18px", "background": "#f8fafc"},
        children=[
            html.Div([
                html.Div("Climate Risk Explorer", className="brand",
                         style={"fontSize": "28px", "fontWeight": 700, "color": "#2b6cb0"}),
                html.Div("Expected Annual Impact by administrative unit", className="brand-sub",
                         style={"color": "#6b7280", "fontSize": "16px"}),
            ], className="header", style={"marginBottom": "18px"}),
            controls,
            map_panel,
            html.Hr(style={"marginTop": "24px", "marginBottom": "18px"}),
            html.Div("Risk curve", style={"fontWeight": 600, "marginBottom": 6, "fontSize": "17px"}),
            dcc.Loading(
                id="curve-loading",
                type="default",
                children=dcc.Graph(id="risk-curve", style={"height": "32vh", **PANEL_STYLE}),
                fullscreen=False,
            ),
            dcc.Store(id="session-id", data=session_id),
        ],
    )


# ======================
# Callbacks
# ======================

def register_callbacks(app: dash.Dash, registry: SessionRegistry):
    """Wire the selection callback."""

    outputs = (
        [Output(SELECTOR_IDS[f], "options") for f in FIELDS]
        + [Output(SELECTOR_IDS[f], "value") for f in FIELDS]
        + [Output(SELECTOR_IDS[f], "disabled") for f in FIELDS]
        + [Output("map", "figure"), Output("legend", "children"),
           Output("risk-curve", "figure"), Output("status", "children"),
           Output("status", "className")]
    )
    inputs = [Input(SELECTOR_IDS[f], "value") for f in FIELDS] + [Input("basemap-dd", "value")]

    @app.callback(outputs, inputs, State("session-id", "data"))
    def update_selection(*args):
        *values, basemap, session_id = args
        session = registry.get(session_id)

        trigger = dash.ctx.triggered_id
        field = FIELD_BY_ID.get(trigger)
        if field is not None:
            outcome = handle_selection(session, field, values[FIELDS.index(field)])
            if outcome is not None and outcome.status == STALE:
                # a newer selection owns the page
                return [dash.no_update] * len(outputs)

        return render_state(session, basemap or DEFAULT_BASEMAP)


def create_app(registry: Optional[SessionRegistry] = None,
               source_name: Optional[str] = None,
               temporal: bool = True) -> dash.Dash:
    """
    App factory. Builds the session registry, layout and callbacks.
    Returns a ready-to-run Dash app.
    """
    if registry is None:
        registry = SessionRegistry(
            lambda: DashboardSession.from_config(
                source_name, machine=SelectionStateMachine(temporal=temporal)
            )
        )

    app = dash.Dash(__name__)
    app.title = "Climate Risk Explorer"

    # a fresh session id per page load
    app.layout = lambda: build_layout(SessionRegistry.new_id(), temporal=temporal)
    register_callbacks(app, registry)
    return app


# ======================
# Main
# ======================

if __name__ == "__main__":
    configure_logging()
    app = create_app()
    app.run(debug=True)
