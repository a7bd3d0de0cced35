"""
Shared pytest fixtures for weather layer tests.

Grids are synthetic: small regular lattices filled with constants or with
an analytic field, served to the engine through an InMemoryReader so no
GRIB decoding is needed.
"""

import os
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest
from fastapi.testclient import TestClient

# ---------------------------------------------------------------------------
# Section 1: Environment setup (before ANY weatherlayers_api imports)
# ---------------------------------------------------------------------------
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "warning")

from weatherlayers.data.grid import Grid  # noqa: E402
from weatherlayers.data.parameters import DataType, LevelType, SourceModel  # noqa: E402
from weatherlayers.data.reader import InMemoryReader  # noqa: E402
from weatherlayers.layers.layer_set import LayerSet  # noqa: E402
from weatherlayers.layers.merge_strategy import MergeConfig, MergeStrategy  # noqa: E402
from weatherlayers.metrics import metrics  # noqa: E402

T0 = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Section 2: Grid factories
# ---------------------------------------------------------------------------

def make_grid(
    data_type=DataType.TEMP,
    value=0.0,
    valid_time=T0,
    lats=None,
    lons=None,
    reference_time=None,
    source_model=SourceModel.OTHER,
    level_type=LevelType.SURFACE,
    level_value=0,
    time_range=0,
    file_name=None,
):
    """
    Grid on a 1-degree lattice (default 10..20N, 0..10E).

    ``value`` may be a constant, a 2-D array or a callable f(lon2d, lat2d).
    """
    lats = np.arange(10.0, 21.0) if lats is None else np.asarray(lats, dtype=float)
    lons = np.arange(0.0, 11.0) if lons is None else np.asarray(lons, dtype=float)
    if callable(value):
        lon2d, lat2d = np.meshgrid(lons, lats)
        values = value(lon2d, lat2d)
    elif np.isscalar(value):
        values = np.full((lats.size, lons.size), float(value))
    else:
        values = np.asarray(value, dtype=float)
    return Grid(
        data_type=data_type,
        lats=lats,
        lons=lons,
        values=values,
        valid_time=valid_time,
        level_type=level_type,
        level_value=level_value,
        reference_time=reference_time or T0,
        source_model=source_model,
        time_range=time_range,
        file_name=file_name,
    )


def make_wind(u, v, valid_time=T0, **kwargs):
    """(U grid, V grid) pair with constant components."""
    return (
        make_grid(DataType.WIND_VX, u, valid_time, **kwargs),
        make_grid(DataType.WIND_VY, v, valid_time, **kwargs),
    )


def hours(h: float) -> datetime:
    return T0 + timedelta(hours=h)


class FixedClock:
    """Settable clock for merge-strategy currency scoring."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ---------------------------------------------------------------------------
# Section 3: Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_metrics():
    """Every test starts with empty counters."""
    metrics.reset()
    yield


@pytest.fixture
def clock():
    return FixedClock(hours(1))


@pytest.fixture
def reader():
    return InMemoryReader()


@pytest.fixture
def layer_set(reader, clock):
    """Empty LayerSet reading from the in-memory reader with a fixed clock."""
    return LayerSet(MergeStrategy(MergeConfig(), clock=clock), reader=reader)


@pytest.fixture
def temp_files(reader):
    """Two files with temperature at 0h (10.0) and 6h (16.0) on the default lattice."""
    reader.add_file("temp_000.grb2", [make_grid(DataType.TEMP, 10.0, hours(0))])
    reader.add_file("temp_006.grb2", [make_grid(DataType.TEMP, 16.0, hours(6))])
    return ["temp_000.grb2", "temp_006.grb2"]


# ---------------------------------------------------------------------------
# Section 4: API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client(layer_set):
    """FastAPI TestClient whose shared state holds the test LayerSet."""
    from weatherlayers_api.main import app
    from weatherlayers_api.state import get_app_state, reset_app_state

    reset_app_state()
    get_app_state().replace_layer_set(layer_set)
    with TestClient(app) as test_client:
        yield test_client
    reset_app_state()
