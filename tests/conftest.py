"""Shared fixtures: tiny square boundaries and in-memory collaborators."""

import pandas as pd
import pytest

from eai_dashboard.config import EXPOSURE_CATEGORIES, BoundarySource
from eai_dashboard.errors import MetricLoadError
from eai_dashboard.join import AdminKey
from eai_dashboard.providers import MetricBatch
from eai_dashboard.session import DashboardSession

TEST_SOURCE = BoundarySource("test", "file", "HASC_{level}", "NAME_{level}")


def square(x, y, **props):
    return {
        "type": "Feature",
        "properties": props,
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[x, y], [x + 1, y], [x + 1, y + 1], [x, y + 1], [x, y]]],
        },
    }


def collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


def adm_payload(level, keys):
    """One square per key laid out along the x axis."""
    return collection(*[
        square(80 + i, 27, **{f"HASC_{level}": k, f"NAME_{level}": f"Unit {k}"})
        for i, k in enumerate(keys)
    ])


def metric_rows(level, values, code="POP"):
    return pd.DataFrame({
        f"HASC_{level}": list(values.keys()),
        f"{code}_EAI": list(values.values()),
        f"{code}_EAI%": [v / 100.0 for v in values.values()],
    })


class FakeBoundaryProvider:
    def __init__(self, payloads=None):
        self.payloads = payloads or {}
        self.calls = []

    def fetch(self, iso_code, adm_level):
        self.calls.append((iso_code, adm_level))
        return self.payloads.get((iso_code, adm_level))


class FakeMetricLoader:
    def __init__(self, batches=None):
        self.batches = batches or {}
        self.calls = []

    def load(self, iso_code, adm_level, hazard, category, period=None, scenario=None,
             key_column=None):
        self.calls.append((iso_code, adm_level, hazard, category.code, period, scenario))
        batch = self.batches.get(category.code)
        if batch is None:
            raise MetricLoadError(f"no workbook for {category.code}")
        return batch


@pytest.fixture
def key():
    return AdminKey.from_source(TEST_SOURCE)


@pytest.fixture
def population():
    return EXPOSURE_CATEGORIES["POP"]


@pytest.fixture
def boundaries():
    return FakeBoundaryProvider({
        ("NPL", 0): adm_payload(0, ["NP"]),
        ("NPL", 1): adm_payload(1, ["NP.A", "NP.B", "NP.C"]),
        ("NPL", 2): adm_payload(2, ["NP.A.1", "NP.A.2", "NP.B.1", "NP.C.1"]),
        ("BTN", 0): adm_payload(0, ["BT"]),
    })


@pytest.fixture
def loader():
    summary = pd.DataFrame({"RP": [10, 50, 100, 500], "POP_Impact": [100.0, 800.0, 1500.0, 4000.0]})
    return FakeMetricLoader({
        "POP": MetricBatch(metric_rows(2, {"NP.A.1": 120.0, "NP.A.2": 5.0, "NP.B.1": 0.0}), summary),
        "BU": MetricBatch(metric_rows(2, {"NP.A.1": 3.0, "NP.C.1": 9.0}, code="BU")),
    })


@pytest.fixture
def session(boundaries, loader):
    return DashboardSession(boundaries, loader, TEST_SOURCE)
