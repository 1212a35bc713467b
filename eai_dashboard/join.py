"""
Boundary <-> metric-row join.

Each rendered boundary feature is matched to its metric row through the
administrative key configured for the boundary source, then restyled in
place. Features without a row (or with a non-positive value) stay on the
map, transparent, with a "no data" popup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .classification import color_for
from .config import NO_DATA_COLOR, PALETTE, BoundarySource, ExposureCategory

logger = logging.getLogger(__name__)

FILL_OPACITY = 0.8


@dataclass(frozen=True)
class AdminKey:
    """Property template on features / column template on metric rows."""
    field_template: str
    row_template: str
    name_template: str

    @classmethod
    def from_source(cls, source: BoundarySource) -> "AdminKey":
        return cls(source.key_field, source.key_field, source.name_field)

    def feature_field(self, level: int) -> str:
        return self.field_template.format(level=level)

    def row_field(self, level: int) -> str:
        return self.row_template.format(level=level)

    def name_field(self, level: int) -> str:
        return self.name_template.format(level=level)


@dataclass
class RenderedFeature:
    feature_id: int
    key: Optional[str]
    name: str
    fill_color: str = NO_DATA_COLOR
    fill_opacity: float = 0.0
    popup: str = ""
    value: Optional[float] = None


@dataclass
class JoinReport:
    matched: List[str] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    total: int = 0

    @property
    def missing_note(self) -> str:
        return f"{len(self.unmatched)}/{self.total} units without data."


def normalize_key(value) -> Optional[str]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    s = str(value).strip()
    return s or None


def _no_data(feat: RenderedFeature) -> None:
    feat.fill_color = NO_DATA_COLOR
    feat.fill_opacity = 0.0
    feat.value = None
    feat.popup = f"<b>{feat.name}</b><br>No data available"


def coerce_numeric(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """Numeric columns in place; anything unparseable or infinite becomes NaN."""
    for c in columns:
        df[c] = pd.to_numeric(df[c], errors="coerce")
        df.loc[~np.isfinite(df[c]), c] = np.nan
    return df


def _fmt(v: float) -> str:
    return f"{v:,.2f}" if v < 1000 else f"{v:,.0f}"


def index_rows(rows: pd.DataFrame, key_column: str) -> Dict[str, dict]:
    """Row lookup by admin key; the first row for a key wins."""
    index: Dict[str, dict] = {}
    if key_column not in rows.columns:
        logger.warning("Metric rows have no %r column; nothing will match", key_column)
        return index
    for rec in rows.to_dict("records"):
        k = normalize_key(rec.get(key_column))
        if k is not None and k not in index:
            index[k] = rec
    return index


def join(
    features: Sequence[RenderedFeature],
    rows: pd.DataFrame,
    adm_level: int,
    category: ExposureCategory,
    breakpoints: Sequence[float],
    key: AdminKey,
    palette: Sequence[str] = PALETTE,
) -> JoinReport:
    """Restyle ``features`` in place from their matching metric rows."""
    numeric = [c for c in (category.eai_column, category.eai_pct_column) if c in rows.columns]
    lookup = index_rows(coerce_numeric(rows.copy(), numeric), key.row_field(adm_level))
    report = JoinReport(total=len(features))

    for feat in features:
        rec = lookup.get(feat.key) if feat.key is not None else None
        value = rec.get(category.eai_column, np.nan) if rec else np.nan
        if rec is None or not np.isfinite(value) or value <= 0:
            _no_data(feat)
            report.unmatched.append(feat.key or feat.name)
            continue

        pct = rec.get(category.eai_pct_column, np.nan)
        feat.value = float(value)
        feat.fill_color = color_for(value, breakpoints, palette)
        feat.fill_opacity = FILL_OPACITY
        feat.popup = (
            f"<b>{feat.name}</b><br>"
            f"{category.label} EAI: <b>{_fmt(float(value))}</b> {category.unit}"
            + (f"<br>{category.label} EAI %: <b>{float(pct):.3f}%</b>" if np.isfinite(pct) else "")
        )
        report.matched.append(feat.key)

    logger.debug("Joined %d/%d features at ADM%d", len(report.matched), report.total, adm_level)
    return report


def reset_styles(features: Sequence[RenderedFeature]) -> None:
    """Outline-only styling, no overlay."""
    for feat in features:
        feat.fill_color = NO_DATA_COLOR
        feat.fill_opacity = 0.0
        feat.value = None
        feat.popup = f"<b>{feat.name}</b>"
