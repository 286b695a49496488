"""
Shared pytest fixtures for SEAPLAN tests.

Grids are synthetic so tests never depend on coastline data files:
- ``square_island``: solid island, lat 10-12, lon 70-72
- ``lagoon_island``: same island with a water hole lat 10.8-11.2, lon 70.8-71.2
- ``peninsula``: coarse outline of the Indian peninsula (west coast, cape,
  east coast) for port-to-port routing
"""

import os

import pytest
from fastapi.testclient import TestClient

# ---------------------------------------------------------------------------
# Section 1: Environment setup (before ANY api.* imports)
# ---------------------------------------------------------------------------
os.environ.pop("LAND_POLYGONS_FILE", None)

from seaplan.data.land_mask import LandPolygon, Ring, ring_from_bbox  # noqa: E402
from seaplan.metrics import metrics  # noqa: E402
from seaplan.optimization.grid_builder import GridBuilder, GridSpec  # noqa: E402
from seaplan.optimization.weather_cost import WeatherSample  # noqa: E402


# ---------------------------------------------------------------------------
# Section 2: Polygons
# ---------------------------------------------------------------------------

PENINSULA_COORDS = (
    (68.5, 23.0), (70.0, 22.5), (72.5, 21.0), (73.0, 19.0), (73.5, 16.5),
    (74.5, 14.0), (75.5, 11.5), (76.5, 9.0), (77.5, 8.0), (78.5, 9.0),
    (79.5, 10.5), (80.0, 12.0), (80.2, 13.2), (80.3, 15.5), (82.0, 17.0),
    (84.5, 19.0), (87.0, 21.5), (88.5, 22.0), (88.5, 26.0), (68.5, 26.0),
    (68.5, 23.0),
)

CALM = WeatherSample(wind_speed_kts=10.0, wave_height_m=1.0, visibility_m=10_000.0)


@pytest.fixture
def square_island():
    return LandPolygon(exterior=ring_from_bbox(10.0, 12.0, 70.0, 72.0), name="square")


@pytest.fixture
def lagoon_island():
    return LandPolygon(
        exterior=ring_from_bbox(10.0, 12.0, 70.0, 72.0),
        holes=(ring_from_bbox(10.8, 11.2, 70.8, 71.2),),
        name="lagoon",
    )


@pytest.fixture
def peninsula():
    return LandPolygon(exterior=Ring(PENINSULA_COORDS), name="india")


@pytest.fixture
def degenerate_polygon():
    """Two distinct vertices: raises inside the point test."""
    return LandPolygon(exterior=Ring(((70.0, 10.0), (71.0, 11.0), (70.0, 10.0))), name="sliver")


# ---------------------------------------------------------------------------
# Section 3: Grids
# ---------------------------------------------------------------------------

@pytest.fixture
def island_spec():
    return GridSpec(lat_min=8.0, lat_max=14.0, lon_min=68.0, lon_max=74.0, resolution_deg=0.1)


@pytest.fixture
def island_grid(square_island, island_spec):
    return GridBuilder(max_workers=2).build(island_spec, [square_island])


@pytest.fixture
def lagoon_grid(lagoon_island, island_spec):
    return GridBuilder(max_workers=2).build(island_spec, [lagoon_island])


@pytest.fixture
def india_spec():
    return GridSpec(lat_min=5.0, lat_max=25.0, lon_min=65.0, lon_max=90.0, resolution_deg=0.5)


@pytest.fixture
def india_grid(peninsula, india_spec):
    return GridBuilder(max_workers=4).build(india_spec, [peninsula])


def uniform_weather(grid, sample):
    """Same sample on every cell."""
    return grid.refresh_cost({p: sample for p in grid.spec.points()})


@pytest.fixture
def calm_india_grid(india_grid):
    return uniform_weather(india_grid, CALM)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


# ---------------------------------------------------------------------------
# Section 4: API client
# ---------------------------------------------------------------------------

@pytest.fixture
def grid_state():
    from api.state import get_grid_state

    state = get_grid_state()
    state.reset()
    yield state
    state.reset()


@pytest.fixture
def client(grid_state):
    from api.main import app

    with TestClient(app) as test_client:
        yield test_client
