"""
Static configuration for the EAI risk dashboard.

- Paths and runtime knobs (overridable through EAI_* environment variables)
- Country capability records (max ADM level, supported hazards)
- Hazard / exposure / period / scenario enumerations
- Boundary data sources and the property used to join them to metric rows
- Colour palette and base map styles
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple


# ======================
# Paths / runtime knobs
# ======================

DATA_DIR = Path(os.environ.get("EAI_DATA_DIR", "data"))
BOUNDARY_DIR = Path(os.environ.get("EAI_BOUNDARY_DIR", str(DATA_DIR / "boundaries")))
BOUNDARY_SOURCE = os.environ.get("EAI_BOUNDARY_SOURCE", "gadm")
LOG_LEVEL = os.environ.get("EAI_LOG_LEVEL", "INFO")
REQUEST_TIMEOUT = float(os.environ.get("EAI_REQUEST_TIMEOUT", "30"))
CLASS_COUNT = int(os.environ.get("EAI_CLASS_COUNT", "5"))
MAX_SESSIONS = int(os.environ.get("EAI_MAX_SESSIONS", "256"))

WORLD_BANK_ADM_URL = (
    "https://services.arcgis.com/iQ1dY19aHwbSDYIF/ArcGIS/rest/services/"
    "World_Bank_Global_Administrative_Divisions_VIEW/FeatureServer"
)


def configure_logging(level: Optional[str] = None) -> None:
    """Root logging setup; called once by the app entry point."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ======================
# Reference data
# ======================

@dataclass(frozen=True)
class CountryCapability:
    name: str
    iso_code: str
    max_adm_level: int
    hazard_codes: Tuple[str, ...]


@dataclass(frozen=True)
class ExposureCategory:
    code: str
    label: str
    unit: str
    sheet: str
    summary_sheet: str

    @property
    def eai_column(self) -> str:
        return f"{self.code}_EAI"

    @property
    def eai_pct_column(self) -> str:
        return f"{self.code}_EAI%"

    @property
    def impact_column(self) -> str:
        return f"{self.code}_Impact"


@dataclass(frozen=True)
class BoundarySource:
    """Where boundaries come from and which property identifies a unit.

    ``key_field`` and ``name_field`` are templates formatted with the ADM
    level, e.g. ``HASC_{level}`` -> ``HASC_2``. Metric rows are expected to
    carry a column with the same name.
    """
    name: str
    provider: str
    key_field: str
    name_field: str


HAZARDS: Dict[str, str] = {
    "FL": "River flood",
    "CF": "Coastal flood",
    "TC": "Tropical cyclone",
    "LS": "Landslide",
    "DR": "Agricultural drought",
    "HS": "Heat stress",
}

COUNTRIES: Dict[str, CountryCapability] = {
    c.iso_code: c for c in (
        CountryCapability("Afghanistan", "AFG", 2, ("FL", "LS", "DR", "HS")),
        CountryCapability("Bangladesh", "BGD", 3, ("FL", "CF", "TC", "HS")),
        CountryCapability("Bhutan", "BTN", 2, ("FL", "LS")),
        CountryCapability("Nepal", "NPL", 3, ("FL", "LS", "HS")),
        CountryCapability("Pakistan", "PAK", 3, ("FL", "CF", "TC", "DR", "HS")),
        CountryCapability("Sri Lanka", "LKA", 2, ("FL", "CF", "TC")),
        CountryCapability("Tajikistan", "TJK", 2, ("FL", "LS", "DR")),
    )
}

EXPOSURE_CATEGORIES: Dict[str, ExposureCategory] = {
    c.code: c for c in (
        ExposureCategory("POP", "Population", "people", "POP", "POP_summary"),
        ExposureCategory("BU", "Built-up", "ha", "BU", "BU_summary"),
        ExposureCategory("AGR", "Cropland", "ha", "AGR", "AGR_summary"),
    )
}

BASELINE_PERIOD = "2020"
PERIODS: Tuple[str, ...] = (BASELINE_PERIOD, "2030", "2050", "2080")
SCENARIOS: Tuple[str, ...] = ("SSP1-2.6", "SSP2-4.5", "SSP3-7.0", "SSP5-8.5")

BOUNDARY_SOURCES: Dict[str, BoundarySource] = {
    # GADM-style files prepared with utils/export_boundaries.py
    "gadm": BoundarySource("gadm", "file", "HASC_{level}", "NAME_{level}"),
    "gadm-names": BoundarySource("gadm-names", "file", "NAME_{level}", "NAME_{level}"),
    # World Bank global administrative divisions (ArcGIS FeatureServer)
    "worldbank": BoundarySource("worldbank", "arcgis", "NAM_{level}", "NAM_{level}"),
}


def get_country(iso_code: str) -> CountryCapability:
    return COUNTRIES[iso_code]


def get_boundary_source(name: Optional[str] = None) -> BoundarySource:
    name = name or BOUNDARY_SOURCE
    try:
        return BOUNDARY_SOURCES[name]
    except KeyError:
        raise ValueError(
            f"Unknown boundary source {name!r}; expected one of {sorted(BOUNDARY_SOURCES)}"
        ) from None


# ======================
# Colours / base maps
# ======================

# Light -> dark, independent of the class count
PALETTE: Tuple[str, ...] = (
    "#ffffcc", "#ffeda0", "#fed976", "#feb24c", "#fd8d3c", "#f03b20", "#bd0026",
)
NO_DATA_COLOR = "rgba(255,255,255,0)"
OUTLINE_COLOR = "#1f2937"

ESRI_IMAGERY_TILES = (
    "https://server.arcgisonline.com/ArcGIS/rest/services/"
    "World_Imagery/MapServer/tile/{z}/{y}/{x}"
)
OPENTOPO_TILES = "https://a.tile.opentopomap.org/{z}/{x}/{y}.png"

BASEMAPS: Dict[str, dict] = {
    "osm": {"label": "OpenStreetMap", "style": "open-street-map"},
    "light": {"label": "Light", "style": "carto-positron"},
    "dark": {"label": "Dark", "style": "carto-darkmatter"},
    "satellite": {
        "label": "Satellite",
        "style": "white-bg",
        "tiles": ESRI_IMAGERY_TILES,
        "attribution": "Tiles &copy; Esri",
    },
    "topo": {
        "label": "Topographic",
        "style": "white-bg",
        "tiles": OPENTOPO_TILES,
        "attribution": "&copy; OpenTopoMap (CC-BY-SA)",
    },
}
DEFAULT_BASEMAP = "light"
