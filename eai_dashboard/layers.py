"""
Map layer controller: the single boundary layer on the map and its overlay.

The layer is replaced wholesale on every boundary-level change. The previous
layer is always dropped first; a bad payload leaves the map without a layer
and the viewport where it was.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from .classification import classify
from .config import CLASS_COUNT, PALETTE, ExposureCategory
from .join import (
    AdminKey,
    JoinReport,
    RenderedFeature,
    coerce_numeric,
    join,
    normalize_key,
    reset_styles,
)
from .legend import LegendEntry, build_legend

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]  # min_lon, min_lat, max_lon, max_lat


@dataclass(frozen=True)
class Viewport:
    lat: float = 20.0
    lon: float = 0.0
    zoom: float = 1.5


DEFAULT_VIEWPORT = Viewport()


@dataclass
class BoundaryLayer:
    level: int
    geojson: dict
    features: List[RenderedFeature]
    bounds: Bounds
    key: AdminKey

    @property
    def layer_id(self) -> str:
        return f"adm{self.level}-{len(self.features)}-{self.bounds}"


@dataclass
class Overlay:
    category: ExposureCategory
    breakpoints: List[float]
    legend: List[LegendEntry]
    report: JoinReport
    summary: Any = None
    total_eai: float = 0.0


def _iter_positions(coords):
    if not coords:
        return
    if isinstance(coords[0], (int, float)):
        yield coords[:2]
        return
    for part in coords:
        yield from _iter_positions(part)


def geometry_bounds(features: Sequence[dict]) -> Optional[Bounds]:
    """Lon/lat bounding box over every feature geometry."""
    points = []
    for feat in features:
        geom = feat.get("geometry") or {}
        if geom.get("type") == "GeometryCollection":
            for g in geom.get("geometries", []):
                points.extend(_iter_positions(g.get("coordinates")))
        else:
            points.extend(_iter_positions(geom.get("coordinates")))
    if not points:
        return None
    arr = np.asarray(points, dtype=float)
    if not np.isfinite(arr).all():
        return None
    return (float(arr[:, 0].min()), float(arr[:, 1].min()),
            float(arr[:, 0].max()), float(arr[:, 1].max()))


def fit_viewport(bounds: Bounds) -> Viewport:
    min_lon, min_lat, max_lon, max_lat = bounds
    span = max(max_lon - min_lon, max_lat - min_lat, 1e-3)
    zoom = max(0.0, min(12.0, math.log2(360.0 / span) - 0.5))
    return Viewport(lat=(min_lat + max_lat) / 2, lon=(min_lon + max_lon) / 2, zoom=round(zoom, 2))


def build_layer(payload: Any, level: int, key: AdminKey) -> Optional[BoundaryLayer]:
    """Validate a GeoJSON payload and wrap it as a layer; None if unusable."""
    if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
        return None
    raw = [f for f in payload["features"] if isinstance(f, dict) and f.get("geometry")]
    if not raw:
        return None
    bounds = geometry_bounds(raw)
    if bounds is None:
        return None

    key_field = key.feature_field(level)
    name_field = key.name_field(level)
    out_features, rendered = [], []
    for i, feat in enumerate(raw):
        props = feat.get("properties") or {}
        # own copy with a stable id; the provider's payload stays untouched
        normalized = {"type": "Feature", "id": i,
                      "geometry": copy.deepcopy(feat["geometry"]),
                      "properties": dict(props)}
        out_features.append(normalized)
        name = props.get(name_field) or props.get(key_field) or f"Unit {i + 1}"
        rendered.append(RenderedFeature(feature_id=i, key=normalize_key(props.get(key_field)),
                                        name=str(name)))
    reset_styles(rendered)
    geojson = {"type": "FeatureCollection", "features": out_features}
    return BoundaryLayer(level=level, geojson=geojson, features=rendered, bounds=bounds, key=key)


class MapLayerController:
    """Owns at most one boundary layer plus its overlay and the viewport."""

    def __init__(self, class_count: int = CLASS_COUNT, palette: Sequence[str] = PALETTE):
        self.class_count = class_count
        self.palette = tuple(palette)
        self.layer: Optional[BoundaryLayer] = None
        self.overlay: Optional[Overlay] = None
        self.viewport: Viewport = DEFAULT_VIEWPORT

    def clear(self) -> None:
        self.layer = None
        self.overlay = None

    def clear_overlay(self) -> None:
        self.overlay = None
        if self.layer is not None:
            reset_styles(self.layer.features)

    def replace(self, payload: Any, level: int, key: AdminKey) -> bool:
        """Swap in a new boundary layer; False when the payload is empty or
        malformed (the old layer is gone either way)."""
        self.clear()
        layer = build_layer(payload, level, key)
        if layer is None:
            logger.warning("Empty or malformed boundary payload for ADM%d", level)
            return False
        self.layer = layer
        self.viewport = fit_viewport(layer.bounds)
        logger.info("Displaying %d ADM%d features", len(layer.features), level)
        return True

    def apply_overlay(self, rows, category: ExposureCategory, summary=None) -> Optional[Overlay]:
        """Classify the batch, recolour the layer and rebuild the legend."""
        if self.layer is None:
            return None
        column = category.eai_column
        values = []
        if column in rows.columns:
            values = coerce_numeric(rows[[column]].copy(), [column])[column].tolist()
        breakpoints = classify(values, self.class_count)
        report = join(self.layer.features, rows, self.layer.level, category,
                      breakpoints, self.layer.key, self.palette)
        total = float(sum(f.value for f in self.layer.features if f.value))
        self.overlay = Overlay(
            category=category,
            breakpoints=breakpoints,
            legend=build_legend(breakpoints, self.palette),
            report=report,
            summary=summary,
            total_eai=total,
        )
        return self.overlay
