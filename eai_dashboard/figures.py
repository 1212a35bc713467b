"""Plotly figure builders: the choropleth map and the risk (exceedance) curve."""

from __future__ import annotations

from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from .config import BASEMAPS, DEFAULT_BASEMAP, OUTLINE_COLOR, ExposureCategory
from .join import RenderedFeature
from .layers import DEFAULT_VIEWPORT, BoundaryLayer, Overlay, Viewport

HOVERLABEL = dict(
    bgcolor="rgba(255, 255, 255, 0.95)",
    bordercolor="#e5e7eb",
    font_size=13,
    font_family="Inter",
)


def _map_layout(layer: Optional[BoundaryLayer], viewport: Viewport, basemap: str) -> dict:
    base = BASEMAPS.get(basemap) or BASEMAPS[DEFAULT_BASEMAP]
    layers: List[dict] = []
    if base.get("tiles"):
        layers.append({
            "sourcetype": "raster",
            "sourceattribution": base.get("attribution", ""),
            "source": [base["tiles"]],
            "below": "traces",
        })
    if layer is not None:
        layers.append({
            "sourcetype": "geojson",
            "source": layer.geojson,
            "type": "line",
            "color": OUTLINE_COLOR,
            "line": {"width": 1.2},
        })
    return {
        "style": base["style"],
        "center": {"lat": viewport.lat, "lon": viewport.lon},
        "zoom": viewport.zoom,
        "layers": layers,
    }


def _trace(layer: BoundaryLayer, feats: List[RenderedFeature], color: str,
           opacity: float, name: str) -> go.Choroplethmap:
    return go.Choroplethmap(
        geojson=layer.geojson,
        locations=[f.feature_id for f in feats],
        z=[1] * len(feats),
        colorscale=[[0, color], [1, color]],
        showscale=False,
        marker_opacity=opacity,
        marker_line_width=0,
        name=name,
        customdata=np.array([f.popup for f in feats], dtype=object).reshape(-1, 1),
        hovertemplate="%{customdata[0]}<extra></extra>",
    )


def make_map_figure(
    layer: Optional[BoundaryLayer],
    overlay: Optional[Overlay],
    viewport: Viewport = DEFAULT_VIEWPORT,
    basemap: str = DEFAULT_BASEMAP,
) -> go.Figure:
    """Choropleth of the current layer: one trace per colour class plus a
    transparent trace for units without data."""
    fig = go.Figure()

    if layer is None:
        fig.add_trace(go.Scattermap(lat=[], lon=[], mode="markers", showlegend=False))
    else:
        colored: Dict[str, List[RenderedFeature]] = {}
        blank: List[RenderedFeature] = []
        for feat in layer.features:
            if overlay is not None and feat.fill_opacity > 0:
                colored.setdefault(feat.fill_color, []).append(feat)
            else:
                blank.append(feat)

        if blank:
            name = "No data" if overlay is not None else "Boundaries"
            # near-zero opacity keeps hover working on unfilled units
            fig.add_trace(_trace(layer, blank, "#ffffff", 0.01, name))
        if overlay is not None:
            for entry in overlay.legend:
                feats = colored.pop(entry.color, None)
                if feats:
                    fig.add_trace(_trace(layer, feats, entry.color, feats[0].fill_opacity, entry.label))

    fig.update_layout(
        margin={"r": 0, "t": 0, "l": 0, "b": 0},
        showlegend=False,
        hoverlabel=HOVERLABEL,
        map=_map_layout(layer, viewport, basemap),
        uirevision=layer.layer_id if layer is not None else "empty",
    )
    return fig


def make_empty_curve(message: str = "Choose an exposure category to see the risk curve.") -> go.Figure:
    """Placeholder chart when no summary batch is loaded."""
    fig = go.Figure()
    fig.update_layout(
        margin={"r": 0, "t": 0, "l": 0, "b": 0},
        xaxis_title="Impact",
        yaxis_title="Annual exceedance frequency",
        annotations=[dict(text=message, x=0.5, y=0.5, xref="paper", yref="paper",
                          showarrow=False)],
    )
    return fig


def make_risk_curve(summary: Optional[pd.DataFrame], category: Optional[ExposureCategory],
                    total_eai: float = 0.0) -> go.Figure:
    """Exceedance-frequency curve (impact vs 1/RP) with the total EAI."""
    if summary is None or category is None or summary.empty:
        return make_empty_curve()

    df = summary[["RP", category.impact_column]].dropna()
    df = df[df["RP"] > 0].copy()
    if df.empty:
        return make_empty_curve("No return-period data for this selection.")
    df["freq"] = 1.0 / df["RP"]
    df = df.sort_values(category.impact_column)

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=df[category.impact_column],
        y=df["freq"],
        mode="lines+markers",
        name=category.label,
        line=dict(width=3, color="#bd0026"),
        marker=dict(size=8, color="#bd0026", line=dict(width=2, color="#ffffff")),
        customdata=df["RP"].to_numpy().reshape(-1, 1),
        hovertemplate=(
            "<b>RP %{customdata[0]:,.0f} yr</b><br>"
            f"Impact: %{{x:,.0f}} {category.unit}<br>"
            "Frequency: %{y:.4f}<extra></extra>"
        ),
    ))
    fig.update_layout(
        margin={"r": 20, "t": 20, "l": 80, "b": 50},
        plot_bgcolor="rgba(0,0,0,0)",
        paper_bgcolor="rgba(0,0,0,0)",
        font=dict(family="Inter, system-ui, sans-serif", size=12),
        xaxis=dict(title=f"{category.label} impact ({category.unit})", showgrid=True,
                   gridcolor="#f3f4f6"),
        yaxis=dict(title="Annual exceedance frequency", type="log", showgrid=True,
                   gridcolor="#f3f4f6"),
        hoverlabel=HOVERLABEL,
        showlegend=False,
        annotations=[dict(
            text=f"<b>Total EAI: {total_eai:,.0f} {category.unit}</b>",
            x=0.98, y=0.95, xref="paper", yref="paper", xanchor="right",
            showarrow=False, bgcolor="rgba(255,255,255,0.85)",
        )],
    )
    return fig
