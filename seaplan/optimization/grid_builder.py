"""
Navigable grid for the route planner.

A uniform lat/lon lattice split into two physically separate layers:

- ``ClassificationLayer``: land / obstacle / zone per cell. Built once per
  grid generation. Its arrays are read-only and it has no mutators.
- ``CostLayer``: weather, scores and traversal cost per cell. Versioned;
  every refresh produces a new layer (copy-on-refresh).

``NavigableGrid`` pairs one classification with one cost snapshot. A
weather refresh returns a new grid sharing the same classification
object, so land status cannot change under a running search.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from types import MappingProxyType
from typing import (
    Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union,
)

import numpy as np
from scipy.spatial import cKDTree

from seaplan.config import RoutingThresholds
from seaplan.data.land_mask import LandClassifier, LandPolygon, buffer_coastline
from seaplan.errors import ClassificationFailure, GridUnavailable
from seaplan.metrics import metrics
from seaplan.optimization.base_planner import EARTH_RADIUS_KM, haversine_km_array
from seaplan.optimization.weather_cost import NEUTRAL_SCORE, CostScore, WeatherSample, score_many

logger = logging.getLogger(__name__)

LatLon = Tuple[float, float]
CellIndex = Tuple[int, int]  # (row, col)

# 8-connected neighbourhood
DIRECTIONS = [
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1),           (0, 1),
    (1, -1),  (1, 0),  (1, 1),
]

# Decimal places kept for cell coordinates
COORD_PRECISION = 6


class Zone(str, Enum):
    OPEN_WATER = "open_water"
    COASTAL = "coastal"


# -------------------------------------------------------------------
# Grid geometry
# -------------------------------------------------------------------

@dataclass(frozen=True)
class GridSpec:
    """Bounds and resolution of a uniform grid. Cell centres sit on the lattice."""
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float
    resolution_deg: float = 0.2

    def __post_init__(self):
        values = (self.lat_min, self.lat_max, self.lon_min, self.lon_max, self.resolution_deg)
        if not all(math.isfinite(v) for v in values):
            raise ValueError(f"Grid bounds must be finite: {values}")
        if self.resolution_deg <= 0:
            raise ValueError(f"Grid resolution must be positive, got {self.resolution_deg}")
        if not (-90 <= self.lat_min <= self.lat_max <= 90):
            raise ValueError(f"Invalid latitude range [{self.lat_min}, {self.lat_max}]")
        if not (-180 <= self.lon_min <= self.lon_max <= 360):
            raise ValueError(f"Invalid longitude range [{self.lon_min}, {self.lon_max}]")

    @property
    def rows(self) -> int:
        return int(math.floor((self.lat_max - self.lat_min) / self.resolution_deg + 1e-9)) + 1

    @property
    def cols(self) -> int:
        return int(math.floor((self.lon_max - self.lon_min) / self.resolution_deg + 1e-9)) + 1

    @property
    def shape(self) -> Tuple[int, int]:
        return self.rows, self.cols

    @property
    def size(self) -> int:
        return self.rows * self.cols

    def lat_of(self, row: int) -> float:
        return round(self.lat_min + row * self.resolution_deg, COORD_PRECISION)

    def lon_of(self, col: int) -> float:
        return round(self.lon_min + col * self.resolution_deg, COORD_PRECISION)

    def coord(self, row: int, col: int) -> LatLon:
        return self.lat_of(row), self.lon_of(col)

    @cached_property
    def lats(self) -> np.ndarray:
        return np.round(self.lat_min + np.arange(self.rows) * self.resolution_deg, COORD_PRECISION)

    @cached_property
    def lons(self) -> np.ndarray:
        return np.round(self.lon_min + np.arange(self.cols) * self.resolution_deg, COORD_PRECISION)

    def contains(self, lat: float, lon: float) -> bool:
        half = self.resolution_deg / 2
        return (self.lat_min - half <= lat <= self.lat_max + half
                and self.lon_min - half <= lon <= self.lon_max + half)

    def index(self, lat: float, lon: float) -> Optional[CellIndex]:
        """Cell containing (lat, lon), or None when outside the grid."""
        if not (math.isfinite(lat) and math.isfinite(lon)) or not self.contains(lat, lon):
            return None
        row = int(round((lat - self.lat_min) / self.resolution_deg))
        col = int(round((lon - self.lon_min) / self.resolution_deg))
        row = min(max(row, 0), self.rows - 1)
        col = min(max(col, 0), self.cols - 1)
        return row, col

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def points(self) -> List[LatLon]:
        """All cell centres, row-major."""
        return [self.coord(r, c) for r in range(self.rows) for c in range(self.cols)]

    @classmethod
    def around(
        cls,
        waypoints: Sequence[LatLon],
        resolution_deg: float = 0.2,
        margin_deg: float = 5.0,
    ) -> "GridSpec":
        """Grid covering the waypoints' bounding box plus a margin."""
        lats = [wp[0] for wp in waypoints]
        lons = [wp[1] for wp in waypoints]
        return cls(
            lat_min=max(min(lats) - margin_deg, -85.0),
            lat_max=min(max(lats) + margin_deg, 85.0),
            lon_min=max(min(lons) - margin_deg, -180.0),
            lon_max=min(max(lons) + margin_deg, 180.0),
            resolution_deg=resolution_deg,
        )


# -------------------------------------------------------------------
# Classification layer (write-once)
# -------------------------------------------------------------------

@dataclass(frozen=True)
class Classification:
    is_land: bool
    is_obstacle: bool
    zone: Optional[Zone]  # None on land

    @property
    def traversable(self) -> bool:
        return not self.is_land and not self.is_obstacle


@dataclass(frozen=True)
class GridCell:
    """Full view of one cell: classification plus the current weather cost."""
    lat: float
    lon: float
    is_land: bool
    is_obstacle: bool
    zone: Optional[Zone]
    weather: Optional[WeatherSample]
    cost: int
    safety: float
    fuel_efficiency: float

    @property
    def traversable(self) -> bool:
        return not self.is_land and not self.is_obstacle


@dataclass(frozen=True)
class ClassificationReport:
    """Summary of one classification run."""
    total_cells: int
    land_cells: int
    obstacle_cells: int
    coastal_cells: int
    open_water_cells: int
    failures: Tuple[ClassificationFailure, ...] = ()

    @property
    def failed_polygons(self) -> List[str]:
        return [f.polygon_name for f in self.failures]


def _frozen(arr: np.ndarray, dtype) -> np.ndarray:
    out = np.array(arr, dtype=dtype, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class ClassificationLayer:
    """
    Immutable land/water classification of a grid.

    ``is_obstacle`` includes land: a cell is an obstacle when it is land or
    explicitly blocked.
    """
    spec: GridSpec
    land: np.ndarray
    obstacle: np.ndarray
    coastal: np.ndarray
    report: ClassificationReport

    def __post_init__(self):
        for name in ("land", "obstacle", "coastal"):
            arr = getattr(self, name)
            if arr.shape != self.spec.shape:
                raise ValueError(f"{name} mask shape {arr.shape} != grid shape {self.spec.shape}")
            object.__setattr__(self, name, _frozen(arr, bool))

    @classmethod
    def from_masks(
        cls,
        spec: GridSpec,
        land: np.ndarray,
        blocked: Optional[np.ndarray] = None,
        failures: Sequence[ClassificationFailure] = (),
    ) -> "ClassificationLayer":
        """Derive obstacle and coastal layers from a land mask."""
        land = np.asarray(land, dtype=bool)
        blocked = np.zeros_like(land) if blocked is None else np.asarray(blocked, dtype=bool)
        obstacle = land | blocked
        coastal = buffer_coastline(land)
        water = ~land
        report = ClassificationReport(
            total_cells=int(land.size),
            land_cells=int(land.sum()),
            obstacle_cells=int((blocked & water).sum()),
            coastal_cells=int(coastal.sum()),
            open_water_cells=int((water & ~coastal).sum()),
            failures=tuple(failures),
        )
        return cls(spec=spec, land=land, obstacle=obstacle, coastal=coastal, report=report)

    @property
    def traversable(self) -> np.ndarray:
        return ~self.obstacle

    def get(self, row: int, col: int) -> Classification:
        is_land = bool(self.land[row, col])
        zone = None
        if not is_land:
            zone = Zone.COASTAL if self.coastal[row, col] else Zone.OPEN_WATER
        return Classification(
            is_land=is_land, is_obstacle=bool(self.obstacle[row, col]), zone=zone,
        )

    @cached_property
    def _land_tree(self) -> Optional[cKDTree]:
        rows, cols = np.nonzero(self.land)
        if len(rows) == 0:
            return None
        return cKDTree(_unit_vectors(self.spec.lats[rows], self.spec.lons[cols]))

    def distance_to_land_km(self, lat: float, lon: float) -> float:
        """Great circle distance from (lat, lon) to the nearest land cell centre."""
        tree = self._land_tree
        if tree is None:
            return math.inf
        chord, _ = tree.query(_unit_vectors(np.array([lat]), np.array([lon]))[0])
        return float(_chord_to_km(float(chord)))

    @cached_property
    def clearance_km(self) -> np.ndarray:
        """Distance (km) from every cell centre to the nearest land cell centre."""
        tree = self._land_tree
        if tree is None:
            out = np.full(self.spec.shape, np.inf)
        else:
            lat_grid, lon_grid = np.meshgrid(self.spec.lats, self.spec.lons, indexing="ij")
            chords, _ = tree.query(_unit_vectors(lat_grid.ravel(), lon_grid.ravel()))
            out = _chord_to_km(chords).reshape(self.spec.shape)
            out[self.land] = 0.0
        out.setflags(write=False)
        return out


def _unit_vectors(lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    lat_r = np.radians(np.asarray(lats, dtype=float))
    lon_r = np.radians(np.asarray(lons, dtype=float))
    return np.column_stack((
        np.cos(lat_r) * np.cos(lon_r),
        np.cos(lat_r) * np.sin(lon_r),
        np.sin(lat_r),
    ))


def _chord_to_km(chord):
    return EARTH_RADIUS_KM * 2 * np.arcsin(np.clip(np.asarray(chord) / 2, 0.0, 1.0))


# -------------------------------------------------------------------
# Cost layer (versioned, copy-on-refresh)
# -------------------------------------------------------------------

SampleInput = Union[Mapping[LatLon, WeatherSample], Iterable[Tuple[LatLon, WeatherSample]]]

# Cost of cells that can never be entered
OBSTACLE_COST = 10


@dataclass(frozen=True, eq=False)
class CostLayer:
    version: int
    cost: np.ndarray        # int 1..10
    safety: np.ndarray      # float 0..100
    fuel: np.ndarray        # float 0..100
    weather: Mapping[CellIndex, WeatherSample]

    def __post_init__(self):
        object.__setattr__(self, "cost", _frozen(self.cost, int))
        object.__setattr__(self, "safety", _frozen(self.safety, float))
        object.__setattr__(self, "fuel", _frozen(self.fuel, float))
        object.__setattr__(self, "weather", MappingProxyType(dict(self.weather)))

    @classmethod
    def neutral(cls, classification: ClassificationLayer) -> "CostLayer":
        """Version 0: every cell scored with neutral weather."""
        shape = classification.spec.shape
        cost = np.full(shape, NEUTRAL_SCORE.cost, dtype=int)
        cost[classification.obstacle] = OBSTACLE_COST
        return cls(
            version=0,
            cost=cost,
            safety=np.full(shape, NEUTRAL_SCORE.safety),
            fuel=np.full(shape, NEUTRAL_SCORE.fuel_efficiency),
            weather={},
        )

    def scores(self, row: int, col: int) -> CostScore:
        return CostScore(
            safety=float(self.safety[row, col]),
            fuel_efficiency=float(self.fuel[row, col]),
            cost=int(self.cost[row, col]),
        )

    def refreshed(
        self,
        classification: ClassificationLayer,
        samples: SampleInput,
        thresholds: Optional[RoutingThresholds] = None,
        radius_deg: float = 0.0,
    ) -> "CostLayer":
        """
        New layer with ``samples`` applied; this layer is left untouched.

        Each sample updates the cell containing it, or every cell within
        ``radius_deg`` when a coarser weather lattice is spread over the grid.
        Samples outside the grid are ignored.
        """
        spec = classification.spec
        items = list(samples.items()) if isinstance(samples, Mapping) else list(samples)

        targets: Dict[CellIndex, WeatherSample] = {}
        skipped = 0
        for (lat, lon), sample in items:
            cells = _cells_near(spec, lat, lon, radius_deg)
            if not cells:
                skipped += 1
                continue
            for idx in cells:
                targets[idx] = sample

        cost = self.cost.copy()
        safety = self.safety.copy()
        fuel = self.fuel.copy()
        weather = dict(self.weather)

        if targets:
            indices = list(targets)
            scored = score_many([targets[i] for i in indices], thresholds)
            rows = np.fromiter((i[0] for i in indices), dtype=int, count=len(indices))
            cols = np.fromiter((i[1] for i in indices), dtype=int, count=len(indices))
            cost[rows, cols] = [s.cost for s in scored]
            safety[rows, cols] = [s.safety for s in scored]
            fuel[rows, cols] = [s.fuel_efficiency for s in scored]
            weather.update(targets)
            cost[classification.obstacle] = OBSTACLE_COST

        if skipped:
            logger.debug(f"Ignored {skipped} weather samples outside the grid")

        return CostLayer(
            version=self.version + 1, cost=cost, safety=safety, fuel=fuel, weather=weather,
        )


def _cells_near(spec: GridSpec, lat: float, lon: float, radius_deg: float) -> List[CellIndex]:
    idx = spec.index(lat, lon)
    if radius_deg <= 0:
        return [idx] if idx is not None else []
    span = int(math.ceil(radius_deg / spec.resolution_deg))
    if idx is None:
        return []
    r0, c0 = idx
    return [
        (r, c)
        for r in range(r0 - span, r0 + span + 1)
        for c in range(c0 - span, c0 + span + 1)
        if spec.in_bounds(r, c)
        and abs(spec.lat_of(r) - lat) <= radius_deg + 1e-9
        and abs(spec.lon_of(c) - lon) <= radius_deg + 1e-9
    ]


# -------------------------------------------------------------------
# Navigable grid
# -------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class NavigableGrid:
    """One classification paired with one cost snapshot."""
    classification_layer: ClassificationLayer
    cost_layer: CostLayer

    @property
    def spec(self) -> GridSpec:
        return self.classification_layer.spec

    @property
    def version(self) -> int:
        return self.cost_layer.version

    @property
    def report(self) -> ClassificationReport:
        return self.classification_layer.report

    def _index(self, lat: float, lon: float) -> CellIndex:
        idx = self.spec.index(lat, lon)
        if idx is None:
            raise GridUnavailable(f"({lat:.4f}, {lon:.4f})")
        return idx

    # Point queries ------------------------------------------------------

    def classification(self, lat: float, lon: float) -> Classification:
        return self.classification_layer.get(*self._index(lat, lon))

    def cost(self, lat: float, lon: float) -> int:
        row, col = self._index(lat, lon)
        return int(self.cost_layer.cost[row, col])

    def scores(self, lat: float, lon: float) -> CostScore:
        return self.cost_layer.scores(*self._index(lat, lon))

    def weather(self, lat: float, lon: float) -> Optional[WeatherSample]:
        return self.cost_layer.weather.get(self._index(lat, lon))

    def is_traversable(self, lat: float, lon: float) -> bool:
        row, col = self._index(lat, lon)
        return not self.classification_layer.obstacle[row, col]

    def cell_at(self, lat: float, lon: float) -> GridCell:
        """The cell containing (lat, lon), whatever its classification."""
        return self._cell(*self._index(lat, lon))

    def _cell(self, row: int, col: int) -> GridCell:
        cls = self.classification_layer.get(row, col)
        lat, lon = self.spec.coord(row, col)
        return GridCell(
            lat=lat,
            lon=lon,
            is_land=cls.is_land,
            is_obstacle=cls.is_obstacle,
            zone=cls.zone,
            weather=self.cost_layer.weather.get((row, col)),
            cost=int(self.cost_layer.cost[row, col]),
            safety=float(self.cost_layer.safety[row, col]),
            fuel_efficiency=float(self.cost_layer.fuel[row, col]),
        )

    def cells(self) -> Iterator[GridCell]:
        for row in range(self.spec.rows):
            for col in range(self.spec.cols):
                yield self._cell(row, col)

    def neighbors(self, lat: float, lon: float) -> List[LatLon]:
        """8-connected neighbours inside the grid."""
        row, col = self._index(lat, lon)
        return [
            self.spec.coord(row + dr, col + dc)
            for dr, dc in DIRECTIONS
            if self.spec.in_bounds(row + dr, col + dc)
        ]

    def distance_to_land_km(self, lat: float, lon: float) -> float:
        return self.classification_layer.distance_to_land_km(lat, lon)

    def nearest_cell(
        self,
        lat: float,
        lon: float,
        max_radius_deg: float = 0.5,
        predicate: Optional[Callable[[np.ndarray, np.ndarray], np.ndarray]] = None,
    ) -> Optional[LatLon]:
        """
        Closest cell centre within ``max_radius_deg`` matching ``predicate``.

        ``predicate(rows, cols)`` returns a bool mask over candidate cells;
        the default accepts traversable cells. Returns None when nothing
        matches, which is not the same as ``cell_at`` returning a land cell.
        """
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return None
        spec = self.spec
        res = spec.resolution_deg
        r_lo = max(0, int(math.floor((lat - max_radius_deg - spec.lat_min) / res)))
        r_hi = min(spec.rows - 1, int(math.ceil((lat + max_radius_deg - spec.lat_min) / res)))
        c_lo = max(0, int(math.floor((lon - max_radius_deg - spec.lon_min) / res)))
        c_hi = min(spec.cols - 1, int(math.ceil((lon + max_radius_deg - spec.lon_min) / res)))
        if r_lo > r_hi or c_lo > c_hi:
            return None

        rows, cols = np.meshgrid(
            np.arange(r_lo, r_hi + 1), np.arange(c_lo, c_hi + 1), indexing="ij",
        )
        rows, cols = rows.ravel(), cols.ravel()
        lats, lons = spec.lats[rows], spec.lons[cols]

        mask = (np.abs(lats - lat) <= max_radius_deg + 1e-9) & (np.abs(lons - lon) <= max_radius_deg + 1e-9)
        if predicate is None:
            mask &= ~self.classification_layer.obstacle[rows, cols]
        else:
            mask &= np.asarray(predicate(rows, cols), dtype=bool)
        if not mask.any():
            return None

        dist = haversine_km_array(lat, lon, lats[mask], lons[mask])
        best = int(np.argmin(dist))
        return spec.coord(int(rows[mask][best]), int(cols[mask][best]))

    # Refresh ------------------------------------------------------------

    def refresh_cost(
        self,
        samples: SampleInput,
        thresholds: Optional[RoutingThresholds] = None,
        radius_deg: float = 0.0,
    ) -> "NavigableGrid":
        """New grid with updated weather cost; classification is shared, not copied."""
        with metrics.timer("refresh_cost"):
            layer = self.cost_layer.refreshed(
                self.classification_layer, samples, thresholds, radius_deg,
            )
        metrics.increment("cost_refreshes")
        logger.info(f"Cost layer refreshed to version {layer.version} ({len(layer.weather)} cells with weather)")
        return NavigableGrid(classification_layer=self.classification_layer, cost_layer=layer)


# -------------------------------------------------------------------
# Building
# -------------------------------------------------------------------

class GridBuilder:
    """Builds navigable grids from land polygons."""

    def __init__(self, max_workers: int = 4):
        self.max_workers = max_workers

    def build(
        self,
        spec: GridSpec,
        polygons: Sequence[LandPolygon],
        obstacles: Sequence[LandPolygon] = (),
        blocked_cells: Iterable[LatLon] = (),
    ) -> NavigableGrid:
        """
        Classify every cell centre and pair the result with a neutral cost layer.

        Args:
            spec: Grid bounds and resolution
            polygons: Land masses
            obstacles: Areas that are water but must not be entered (blocked
                straits, shoals). They set ``is_obstacle`` without changing
                ``is_land``, so they do not create coastal cells.
            blocked_cells: Individual cells to block, as (lat, lon)

        Returns:
            NavigableGrid at cost version 0
        """
        points = spec.points()

        with metrics.timer("classify_grid"):
            land_result = LandClassifier(polygons, self.max_workers).classify_points(points)
            land = land_result.is_land.reshape(spec.shape)
            failures = list(land_result.failures)

            blocked = np.zeros(spec.shape, dtype=bool)
            if obstacles:
                obstacle_result = LandClassifier(obstacles, self.max_workers).classify_points(points)
                blocked |= obstacle_result.is_land.reshape(spec.shape)
                failures.extend(obstacle_result.failures)
            for lat, lon in blocked_cells:
                idx = spec.index(lat, lon)
                if idx is None:
                    logger.warning(f"Blocked cell ({lat}, {lon}) is outside the grid, ignored")
                    continue
                blocked[idx] = True

            classification = ClassificationLayer.from_masks(spec, land, blocked, failures)

        report = classification.report
        metrics.set_gauge("grid_cells", report.total_cells)
        logger.info(
            f"Built grid: {report.total_cells} cells ({spec.rows} rows x {spec.cols} cols), "
            f"{report.land_cells} land, {report.coastal_cells} coastal, "
            f"{report.open_water_cells} open water, {report.obstacle_cells} blocked"
        )
        if report.failures:
            logger.warning(
                f"{len(report.failures)} polygons failed classification: "
                f"{', '.join(report.failed_polygons)}"
            )

        return NavigableGrid(
            classification_layer=classification,
            cost_layer=CostLayer.neutral(classification),
        )
