"""
Split a GADM-style boundary file into per-level GeoJSON files that
FileBoundaryProvider can serve:

    <out_dir>/<ISO>_ADM0.geojson, <ISO>_ADM1.geojson, ...

The source holds the finest level, one row per unit, with NAME_<n>,
HASC_<n> and GID_<n> columns for every coarser level n; coarser levels are
built by dissolving on those columns.

Usage:
    python utils/export_boundaries.py data/gadm41_NPL_3.json NPL 3 data/boundaries
"""

import re
import sys
from pathlib import Path
from typing import List, Optional

import geopandas as gpd

LEVEL_COLUMN = re.compile(r"^(NAME|HASC|GID)_(\d+)$")


def level_columns(columns, level: int) -> List[str]:
    """Property columns describing levels 0..level."""
    out = []
    for c in columns:
        m = LEVEL_COLUMN.match(str(c))
        if m and int(m.group(2)) <= level:
            out.append(c)
    return out


def export_levels(src: Path, iso: str, out_dir: Path, max_level: int,
                  layer: Optional[str] = None) -> List[Path]:
    """Write one GeoJSON per ADM level 0..max_level; return the written paths."""
    gdf = gpd.read_file(src, layer=layer) if layer else gpd.read_file(src)
    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs("EPSG:4326")

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []

    for level in range(max_level + 1):
        cols = level_columns(gdf.columns, level)
        if not any(str(c).endswith(f"_{level}") for c in cols):
            raise ValueError(f"{src} has no NAME_/HASC_/GID_ columns for ADM{level}")
        out = gdf[cols + ["geometry"]].dissolve(by=cols, as_index=False, dropna=False)

        out_path = out_dir / f"{iso}_ADM{level}.geojson"
        out.to_file(out_path, driver="GeoJSON")
        print(f"Saved {len(out)} ADM{level} features to {out_path}")
        written.append(out_path)

    return written


if __name__ == "__main__":
    if len(sys.argv) != 5:
        print(__doc__)
        sys.exit(1)
    export_levels(Path(sys.argv[1]), sys.argv[2], Path(sys.argv[4]), int(sys.argv[3]))
