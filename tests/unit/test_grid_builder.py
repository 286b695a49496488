"""
Unit tests for GridBuilder and NavigableGrid.

Tests grid geometry, classification immutability, coastal zones, the
versioned cost layer and point queries.
"""

import math

import numpy as np
import pytest

from seaplan.data.land_mask import LandPolygon, ring_from_bbox
from seaplan.errors import GridUnavailable
from seaplan.metrics import metrics
from seaplan.optimization.grid_builder import (
    OBSTACLE_COST,
    ClassificationLayer,
    CostLayer,
    GridBuilder,
    GridSpec,
    NavigableGrid,
    Zone,
)
from seaplan.optimization.weather_cost import NEUTRAL_SCORE, WeatherSample

STORM = WeatherSample(wind_speed_kts=40.0, wave_height_m=5.0, visibility_m=800.0)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

class TestGridSpec:
    """Tests for GridSpec geometry."""

    def test_shape_includes_both_bounds(self):
        spec = GridSpec(0.0, 1.0, 10.0, 12.0, 0.5)
        assert spec.shape == (3, 5)
        assert spec.size == 15
        assert spec.coord(2, 4) == (1.0, 12.0)

    def test_fractional_resolution_no_drift(self, island_spec):
        assert island_spec.shape == (61, 61)
        assert island_spec.lat_of(28) == 10.8
        assert island_spec.lats[-1] == 14.0

    def test_index_rounds_to_nearest_cell(self):
        spec = GridSpec(0.0, 10.0, 0.0, 10.0, 1.0)
        assert spec.index(2.4, 7.6) == (2, 8)

    def test_index_outside_grid(self):
        spec = GridSpec(0.0, 10.0, 0.0, 10.0, 1.0)
        assert spec.index(11.0, 5.0) is None
        assert spec.index(5.0, float("nan")) is None
        # Within half a cell of the edge still belongs to the edge cell
        assert spec.index(10.4, 5.0) == (10, 5)

    @pytest.mark.parametrize("bounds", [
        (0.0, 1.0, 0.0, 1.0, 0.0),
        (0.0, 1.0, 0.0, 1.0, -0.5),
        (5.0, 1.0, 0.0, 1.0, 0.5),
        (0.0, 95.0, 0.0, 1.0, 0.5),
        (0.0, float("nan"), 0.0, 1.0, 0.5),
    ])
    def test_invalid_specs(self, bounds):
        with pytest.raises(ValueError):
            GridSpec(*bounds)

    def test_around_waypoints(self):
        spec = GridSpec.around([(18.96, 72.82), (13.08, 80.27)], resolution_deg=0.5, margin_deg=2.0)
        assert spec.contains(18.96, 72.82)
        assert spec.contains(13.08, 80.27)
        assert spec.lat_min == pytest.approx(11.08)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestClassification:
    """Tests for GridBuilder.build() classification."""

    def test_every_cell_classified(self, island_grid, island_spec):
        assert island_grid.report.total_cells == island_spec.size
        report = island_grid.report
        assert report.land_cells + report.coastal_cells + report.open_water_cells == report.total_cells

    def test_island_land_and_sea(self, island_grid):
        assert island_grid.classification(11.0, 71.0).is_land
        assert not island_grid.classification(9.0, 69.0).is_land
        assert island_grid.classification(9.0, 69.0).zone is Zone.OPEN_WATER

    def test_land_has_no_zone(self, island_grid):
        c = island_grid.classification(11.0, 71.0)
        assert c.zone is None
        assert c.is_obstacle
        assert not c.traversable

    def test_coastal_cells_touch_land(self, island_grid):
        """A water cell is coastal iff one of its 8 neighbours is land."""
        for cell in island_grid.cells():
            if cell.is_land:
                assert cell.zone is None
                continue
            touches_land = any(
                island_grid.classification(lat, lon).is_land
                for lat, lon in island_grid.neighbors(cell.lat, cell.lon)
            )
            assert (cell.zone is Zone.COASTAL) == touches_land

    def test_lagoon_is_water(self, lagoon_grid):
        c = lagoon_grid.classification(11.0, 71.0)
        assert not c.is_land
        assert c.traversable
        assert lagoon_grid.classification(10.5, 70.5).is_land

    def test_cells_on_coastline_are_land(self, island_grid, lagoon_grid):
        """Cell centres exactly on a ring edge belong to the landmass."""
        # 21 x 21 lattice points from 10.0-12.0 / 70.0-72.0 inclusive
        assert island_grid.report.land_cells == 441
        assert island_grid.classification(12.0, 72.0).is_land
        assert island_grid.classification(10.0, 70.0).is_land
        assert not island_grid.classification(12.1, 72.0).is_land
        # Lagoon shoreline is land; only the 3 x 3 strictly inside is water
        assert lagoon_grid.classification(10.8, 71.0).is_land
        assert lagoon_grid.classification(11.2, 71.2).is_land
        assert lagoon_grid.report.land_cells == 441 - 9

    def test_arrays_are_read_only(self, island_grid):
        layer = island_grid.classification_layer
        with pytest.raises(ValueError):
            layer.land[0, 0] = True
        with pytest.raises(ValueError):
            layer.obstacle[0, 0] = True
        with pytest.raises(ValueError):
            layer.clearance_km[0, 0] = 0.0

    def test_layer_is_frozen(self, island_grid):
        with pytest.raises(AttributeError):
            island_grid.classification_layer.land = None

    def test_failed_polygon_reported_not_fatal(self, square_island, degenerate_polygon, island_spec):
        grid = GridBuilder(max_workers=2).build(island_spec, [degenerate_polygon, square_island])
        assert grid.report.failed_polygons == ["sliver"]
        assert grid.classification(11.0, 71.0).is_land

    def test_obstacles_block_without_coast(self, island_spec):
        shoal = LandPolygon(exterior=ring_from_bbox(9.0, 9.5, 69.0, 69.5), name="shoal")
        grid = GridBuilder().build(island_spec, [], obstacles=[shoal])
        c = grid.classification(9.2, 69.2)
        assert c.is_obstacle and not c.is_land
        assert not grid.is_traversable(9.2, 69.2)
        assert grid.report.coastal_cells == 0
        assert grid.report.obstacle_cells > 0

    def test_blocked_cells(self, island_spec):
        grid = GridBuilder().build(island_spec, [], blocked_cells=[(9.0, 69.0), (50.0, 50.0)])
        assert not grid.is_traversable(9.0, 69.0)
        assert grid.is_traversable(9.1, 69.0)
        assert grid.cost(9.0, 69.0) == OBSTACLE_COST

    def test_build_metrics(self, square_island, island_spec):
        GridBuilder().build(island_spec, [square_island])
        assert metrics.get_gauge("grid_cells") == island_spec.size
        assert metrics.get_timing("classify_grid").count == 1


class TestClearance:
    """Distance from cells to land."""

    def test_distance_to_land(self, island_grid):
        # One cell below the island's southern row
        assert island_grid.distance_to_land_km(9.9, 71.0) == pytest.approx(11.1, abs=0.2)
        assert island_grid.distance_to_land_km(11.0, 71.0) == pytest.approx(0.0, abs=1e-6)

    def test_clearance_array_zero_on_land(self, island_grid):
        layer = island_grid.classification_layer
        assert (layer.clearance_km[layer.land] == 0.0).all()
        assert (layer.clearance_km[~layer.land] > 0.0).all()

    def test_no_land_is_infinite(self, island_spec):
        grid = GridBuilder().build(island_spec, [])
        assert math.isinf(grid.distance_to_land_km(10.0, 70.0))
        assert np.isinf(grid.classification_layer.clearance_km).all()


# ---------------------------------------------------------------------------
# Point queries
# ---------------------------------------------------------------------------

class TestQueries:
    """Tests for NavigableGrid point queries."""

    @pytest.mark.parametrize("lat,lon,expected", [
        (8.0, 68.0, 3),
        (8.0, 71.0, 5),
        (9.0, 69.0, 8),
    ])
    def test_neighbor_counts(self, island_grid, lat, lon, expected):
        assert len(island_grid.neighbors(lat, lon)) == expected

    def test_outside_grid_raises(self, island_grid):
        with pytest.raises(GridUnavailable):
            island_grid.classification(30.0, 71.0)
        with pytest.raises(GridUnavailable):
            island_grid.cost(11.0, 90.0)
        with pytest.raises(GridUnavailable):
            island_grid.neighbors(-20.0, 70.0)

    def test_cell_at_returns_land_cell(self, island_grid):
        cell = island_grid.cell_at(11.02, 70.98)
        assert (cell.lat, cell.lon) == (11.0, 71.0)
        assert cell.is_land

    def test_nearest_cell_none_when_all_land(self, island_grid):
        assert island_grid.nearest_cell(11.0, 71.0, max_radius_deg=0.5) is None

    def test_nearest_cell_finds_water(self, island_grid):
        cell = island_grid.nearest_cell(10.05, 71.0, max_radius_deg=0.5)
        assert cell == (9.9, 71.0)

    def test_nearest_cell_predicate(self, island_grid):
        clearance = island_grid.classification_layer.clearance_km
        cell = island_grid.nearest_cell(
            9.9, 71.0, max_radius_deg=1.0,
            predicate=lambda rows, cols: clearance[rows, cols] >= 50.0,
        )
        assert cell is not None
        assert island_grid.distance_to_land_km(*cell) >= 50.0


# ---------------------------------------------------------------------------
# Cost layer
# ---------------------------------------------------------------------------

class TestCostLayer:
    """Tests for the versioned cost layer."""

    def test_neutral_layer(self, island_grid):
        assert island_grid.version == 0
        assert island_grid.cost(9.0, 69.0) == NEUTRAL_SCORE.cost
        assert island_grid.cost(11.0, 71.0) == OBSTACLE_COST
        assert island_grid.weather(9.0, 69.0) is None

    def test_refresh_shares_classification(self, island_grid):
        refreshed = island_grid.refresh_cost({(9.0, 69.0): STORM})
        assert refreshed.classification_layer is island_grid.classification_layer
        assert refreshed is not island_grid

    def test_refresh_increments_version_and_keeps_old(self, island_grid):
        refreshed = island_grid.refresh_cost({(9.0, 69.0): STORM})
        again = refreshed.refresh_cost([((9.5, 69.5), STORM)])
        assert (island_grid.version, refreshed.version, again.version) == (0, 1, 2)
        assert island_grid.cost(9.0, 69.0) == NEUTRAL_SCORE.cost
        # safety 0, fuel 30 -> average 15 -> cost 9
        assert refreshed.cost(9.0, 69.0) == 9
        assert again.weather(9.0, 69.0) == STORM
        assert again.weather(9.5, 69.5) == STORM

    def test_refresh_never_changes_land(self, island_grid):
        before = island_grid.classification_layer.land.copy()
        refreshed = island_grid.refresh_cost({p: STORM for p in island_grid.spec.points()})
        assert np.array_equal(refreshed.classification_layer.land, before)
        assert refreshed.classification(11.0, 71.0).is_land

    def test_obstacles_keep_max_cost(self, island_grid):
        calm = WeatherSample(wind_speed_kts=8.0, wave_height_m=0.5, visibility_m=10_000.0)
        refreshed = island_grid.refresh_cost({(11.0, 71.0): calm})
        assert refreshed.cost(11.0, 71.0) == OBSTACLE_COST

    def test_samples_outside_grid_ignored(self, island_grid):
        refreshed = island_grid.refresh_cost({(40.0, 10.0): STORM})
        assert refreshed.version == 1
        assert len(refreshed.cost_layer.weather) == 0

    def test_radius_spreads_sample(self, island_grid):
        refreshed = island_grid.refresh_cost({(9.0, 69.0): STORM}, radius_deg=0.2)
        # 5 x 5 block of cells
        assert len(refreshed.cost_layer.weather) == 25
        assert refreshed.weather(9.2, 68.8) == STORM
        assert refreshed.weather(9.3, 69.0) is None

    def test_cost_arrays_read_only(self, island_grid):
        with pytest.raises(ValueError):
            island_grid.cost_layer.cost[0, 0] = 3
        with pytest.raises(TypeError):
            island_grid.cost_layer.weather[(0, 0)] = STORM

    def test_refresh_metrics(self, island_grid):
        island_grid.refresh_cost({(9.0, 69.0): STORM})
        assert metrics.get_counter("cost_refreshes") == 1


def test_grid_from_masks():
    """Grids can be assembled directly from masks (used by synthetic tests)."""
    spec = GridSpec(0.0, 2.0, 0.0, 2.0, 1.0)
    land = np.zeros(spec.shape, dtype=bool)
    land[1, 1] = True
    layer = ClassificationLayer.from_masks(spec, land)
    grid = NavigableGrid(classification_layer=layer, cost_layer=CostLayer.neutral(layer))
    assert grid.report.land_cells == 1
    assert grid.report.coastal_cells == 8
    assert grid.report.open_water_cells == 0


def test_mask_shape_mismatch():
    spec = GridSpec(0.0, 2.0, 0.0, 2.0, 1.0)
    with pytest.raises(ValueError):
        ClassificationLayer.from_masks(spec, np.zeros((2, 2), dtype=bool))
