"""Legend (colour key) for the current classification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from dash import html

from .classification import palette_index
from .config import NO_DATA_COLOR, PALETTE, ExposureCategory


@dataclass(frozen=True)
class LegendEntry:
    """One swatch. The interval is ``lower < value <= upper``; ``upper`` is
    None for the open-ended top class, ``lower`` None for the no-data entry."""
    color: str
    label: str
    lower: Optional[float] = None
    upper: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.lower is None:
            return False
        return value > self.lower and (self.upper is None or value <= self.upper)


def _fmt(v: float) -> str:
    if v >= 1000:
        return f"{v:,.0f}"
    if v >= 1:
        return f"{v:,.1f}"
    return f"{v:.3g}"


def build_legend(
    breakpoints: Sequence[float],
    palette: Sequence[str] = PALETTE,
    lower_bound: float = 0.0,
) -> List[LegendEntry]:
    """
    One entry per class, highest class first.

    A value on a breakpoint belongs to the class below it, so labels read
    ``> lower`` for the top class, ``> lower – upper`` in between and
    ``≤ upper`` for the bottom class. A single class reads
    ``> lower_bound – upper``.
    """
    n = len(breakpoints)
    if n == 0:
        return [LegendEntry(NO_DATA_COLOR, "No data")]

    entries = []
    for i in range(n - 1, -1, -1):
        color = palette[palette_index(i, n, len(palette))]
        upper = float(breakpoints[i])
        lower = float(breakpoints[i - 1]) if i > 0 else float(lower_bound)
        if n == 1:
            label = f"> {_fmt(lower)} – {_fmt(upper)}"
        elif i == n - 1:
            label = f"> {_fmt(lower)}"
        elif i == 0:
            label = f"≤ {_fmt(upper)}"
        else:
            label = f"> {_fmt(lower)} – {_fmt(upper)}"
        # the top class also takes values clamped from above its bound
        entries.append(LegendEntry(color, label, lower, None if i == n - 1 else upper))
    return entries


def legend_title(category: Optional[ExposureCategory]) -> str:
    if category is None:
        return "Expected Annual Impact"
    return f"{category.label} EAI ({category.unit})"


def render_legend(entries: Sequence[LegendEntry], title: str) -> html.Div:
    """Dash key: swatch + interval label per entry."""
    rows = []
    for entry in entries:
        swatch_style = {
            "display": "inline-block", "width": "18px", "height": "14px",
            "marginRight": "8px", "background": entry.color,
            "border": "1px solid #9ca3af", "verticalAlign": "middle",
        }
        rows.append(html.Div([
            html.Span(style=swatch_style, className="legend-swatch"),
            html.Span(entry.label, className="legend-label", style={"fontSize": "13px"}),
        ], className="legend-item", style={"marginBottom": "4px"}))

    return html.Div([
        html.H4(title, style={"fontSize": "14px", "fontWeight": 600, "margin": "0 0 8px 0"}),
        html.Div(rows),
    ], className="legend")
