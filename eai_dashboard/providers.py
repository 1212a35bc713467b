"""
Data collaborators: boundary geometry providers and the metric workbook loader.

Boundary providers never raise: any failure is logged and reported as
``None``. The metric loader raises ``MetricLoadError``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

import pandas as pd
import requests

from .config import (
    BOUNDARY_DIR,
    DATA_DIR,
    REQUEST_TIMEOUT,
    WORLD_BANK_ADM_URL,
    BoundarySource,
    ExposureCategory,
)
from .errors import MetricLoadError
from .join import coerce_numeric

logger = logging.getLogger(__name__)


# ======================
# Boundaries
# ======================

class BoundaryProvider:
    """``fetch(iso, level)`` -> GeoJSON FeatureCollection dict or None."""

    def fetch(self, iso_code: str, adm_level: int) -> Optional[dict]:
        raise NotImplementedError


@lru_cache(maxsize=16)
def _read_geojson(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class FileBoundaryProvider(BoundaryProvider):
    """Local ``<ISO>_ADM<level>.geojson`` files (see utils/export_boundaries.py)."""

    def __init__(self, directory: Path = BOUNDARY_DIR, pattern: str = "{iso}_ADM{level}.geojson"):
        self.directory = Path(directory)
        self.pattern = pattern

    def path_for(self, iso_code: str, adm_level: int) -> Path:
        return self.directory / self.pattern.format(iso=iso_code, level=adm_level)

    def fetch(self, iso_code: str, adm_level: int) -> Optional[dict]:
        path = self.path_for(iso_code, adm_level)
        try:
            return _read_geojson(path)
        except (OSError, ValueError) as exc:
            logger.warning("Boundary file %s unavailable: %s", path, exc)
            return None


class ArcGISBoundaryProvider(BoundaryProvider):
    """World Bank administrative divisions FeatureServer; layer id = ADM level."""

    def __init__(self, base_url: str = WORLD_BANK_ADM_URL, timeout: float = REQUEST_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, iso_code: str, adm_level: int) -> Optional[dict]:
        url = f"{self.base_url}/{int(adm_level)}/query"
        params = {"where": f"ISO_A3 = '{iso_code}'", "outFields": "*", "f": "geojson"}
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Boundary fetch failed for %s ADM%d: %s", iso_code, adm_level, exc)
            return None
        if isinstance(data, dict) and "error" in data:
            logger.warning("Boundary service error for %s ADM%d: %s", iso_code, adm_level, data["error"])
            return None
        return data


def make_boundary_provider(source: BoundarySource) -> BoundaryProvider:
    if source.provider == "file":
        return FileBoundaryProvider()
    if source.provider == "arcgis":
        return ArcGISBoundaryProvider()
    raise ValueError(f"Unknown boundary provider {source.provider!r}")


# ======================
# Metric workbooks
# ======================

@dataclass(frozen=True)
class MetricBatch:
    rows: pd.DataFrame
    summary: Optional[pd.DataFrame] = None


def scenario_slug(scenario: str) -> str:
    """'SSP2-4.5' -> 'SSP245'"""
    return "".join(ch for ch in scenario if ch.isalnum()).upper()


class ExcelMetricLoader:
    """
    Metric workbooks laid out as

        <data_dir>/<ISO>/<ISO>_ADM<level>_<HAZ>[_<period>[_<SSP>]].xlsx

    one sheet of per-unit rows per exposure category and an optional
    ``<sheet>_summary`` sheet (return period table) for the risk curve.
    """

    def __init__(self, data_dir: Path = DATA_DIR):
        self.data_dir = Path(data_dir)

    def workbook_path(self, iso_code: str, adm_level: int, hazard: str,
                      period: Optional[str] = None, scenario: Optional[str] = None) -> Path:
        stem = f"{iso_code}_ADM{adm_level}_{hazard}"
        if period:
            stem += f"_{period}"
        if scenario:
            stem += f"_{scenario_slug(scenario)}"
        return self.data_dir / iso_code / f"{stem}.xlsx"

    def load(self, iso_code: str, adm_level: int, hazard: str, category: ExposureCategory,
             period: Optional[str] = None, scenario: Optional[str] = None, key_column: Optional[str] = None) -> MetricBatch:
        path = self.workbook_path(iso_code, adm_level, hazard, period, scenario)
        if not path.exists():
            raise MetricLoadError(f"Metric workbook not found: {path.name}")
        try:
            sheets = pd.read_excel(path, sheet_name=None)
        except Exception as exc:
            raise MetricLoadError(f"Could not read {path.name}: {exc}") from exc

        if category.sheet not in sheets:
            raise MetricLoadError(f"{path.name} has no sheet {category.sheet!r}")
        rows = sheets[category.sheet].copy()
        rows.rename(columns={c: str(c).strip() for c in rows.columns}, inplace=True)

        required = {category.eai_column, category.eai_pct_column}
        if key_column:
            required.add(key_column)
        missing = required.difference(rows.columns)
        if missing:
            raise MetricLoadError(f"Sheet {category.sheet!r} is missing columns: {sorted(missing)}")
        rows = coerce_numeric(rows, [category.eai_column, category.eai_pct_column])

        summary = sheets.get(category.summary_sheet)
        if summary is not None:
            summary = summary.copy()
            summary.rename(columns={c: str(c).strip() for c in summary.columns}, inplace=True)
            if {"RP", category.impact_column}.issubset(summary.columns):
                summary = coerce_numeric(summary, ["RP", category.impact_column])
            else:
                logger.warning("Summary sheet %r lacks RP/%s columns; chart disabled",
                               category.summary_sheet, category.impact_column)
                summary = None

        logger.info("Loaded %d metric rows from %s[%s]", len(rows), path.name, category.sheet)
        return MetricBatch(rows=rows, summary=summary)
