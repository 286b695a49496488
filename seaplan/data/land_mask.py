"""
Land mask for grid classification.

Decides land/water for grid cells from coastline polygons:

1. ``point_in_ring``: even-odd ray casting over one ring (numpy, vectorised
   over the ring's edges). Points on an edge are land.
2. ``LandPolygon.contains``: inside the exterior ring and inside none of the
   hole rings (a lagoon cut out of a landmass is water).
3. ``LandClassifier.classify_points``: batch classification, fanned out
   over a thread pool. Polygons that raise during the test are skipped for
   that point and reported, never fatal to the batch.
4. ``buffer_coastline``: 8-neighbour dilation of the land mask that splits
   water into ``coastal`` and ``open_water``.

Coordinates inside rings are (lon, lat), GeoJSON order. Public functions
take (lat, lon) and do the swap in one place.
"""

import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage

from seaplan.errors import ClassificationFailure
from seaplan.metrics import metrics

logger = logging.getLogger(__name__)

Coord = Tuple[float, float]  # (lon, lat)

# Cells per task submitted to the pool
CLASSIFY_CHUNK_SIZE = 512


# ---------------------------------------------------------------------------
# Geometry types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Ring:
    """Closed ring of (lon, lat) vertices. Closing vertex optional."""
    coords: Tuple[Coord, ...]

    @cached_property
    def _arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        pts = np.asarray(self.coords, dtype=float)
        if pts.ndim != 2 or pts.shape[1] != 2:
            raise ValueError(f"Ring coordinates must be (lon, lat) pairs, got shape {pts.shape}")
        if not np.all(np.isfinite(pts)):
            raise ValueError("Ring contains non-finite coordinates")
        if len(pts) > 1 and np.array_equal(pts[0], pts[-1]):
            pts = pts[:-1]
        if len(np.unique(pts, axis=0)) < 3:
            raise ValueError(f"Degenerate ring with {len(pts)} vertices")
        return pts[:, 0], pts[:, 1]

    @cached_property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(lon_min, lat_min, lon_max, lat_max)"""
        xs, ys = self._arrays
        return float(xs.min()), float(ys.min()), float(xs.max()), float(ys.max())

    def contains(self, lon: float, lat: float) -> bool:
        return point_in_ring(lon, lat, self)


@dataclass(frozen=True)
class LandPolygon:
    """A landmass: one exterior ring plus optional hole rings (water).

    Ring boundaries are coastline and count as land, for the exterior and
    for holes alike.
    """
    exterior: Ring
    holes: Tuple[Ring, ...] = ()
    name: str = ""

    def contains(self, lat: float, lon: float) -> bool:
        if not self.exterior.contains(lon, lat):
            return False
        for hole in self.holes:
            if point_in_ring(lon, lat, hole, include_boundary=False):
                return False
        return True


# Distance (degrees) within which a point counts as on an edge
BOUNDARY_TOLERANCE_DEG = 1e-9


def point_on_boundary(lon: float, lat: float, ring: Ring) -> bool:
    """True if (lon, lat) lies on one of the ring's edges."""
    xs, ys = ring._arrays
    xj = np.roll(xs, 1)
    yj = np.roll(ys, 1)

    cross = (xs - xj) * (lat - yj) - (ys - yj) * (lon - xj)
    edge_len = np.hypot(xs - xj, ys - yj)
    collinear = np.abs(cross) <= BOUNDARY_TOLERANCE_DEG * np.maximum(edge_len, 1.0)
    within = (
        (lon >= np.minimum(xs, xj) - BOUNDARY_TOLERANCE_DEG)
        & (lon <= np.maximum(xs, xj) + BOUNDARY_TOLERANCE_DEG)
        & (lat >= np.minimum(ys, yj) - BOUNDARY_TOLERANCE_DEG)
        & (lat <= np.maximum(ys, yj) + BOUNDARY_TOLERANCE_DEG)
    )
    return bool(np.any(collinear & within))


def point_in_ring(lon: float, lat: float, ring: Ring, include_boundary: bool = True) -> bool:
    """
    Even-odd ray casting: cast a ray towards +lon and count edge crossings.

    Points on an edge or vertex return ``include_boundary``.

    Raises ValueError for degenerate or non-finite rings.
    """
    lon_min, lat_min, lon_max, lat_max = ring.bounds
    tol = BOUNDARY_TOLERANCE_DEG
    if lon < lon_min - tol or lon > lon_max + tol or lat < lat_min - tol or lat > lat_max + tol:
        return False

    if point_on_boundary(lon, lat, ring):
        return include_boundary

    xs, ys = ring._arrays
    xj = np.roll(xs, 1)
    yj = np.roll(ys, 1)

    straddles = (ys > lat) != (yj > lat)
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = (xj - xs) * (lat - ys) / (yj - ys) + xs
    crossings = np.count_nonzero(straddles & (lon < x_cross))
    return bool(crossings % 2)


def point_on_land(lat: float, lon: float, polygons: Iterable[LandPolygon]) -> bool:
    """True if (lat, lon) is inside any polygon (and none of its holes)."""
    return any(poly.contains(lat, lon) for poly in polygons)


# ---------------------------------------------------------------------------
# GeoJSON / shapely ingestion
# ---------------------------------------------------------------------------

def _ring(coords: Sequence[Any]) -> Ring:
    # Validation is deferred to the point test so one bad ring cannot
    # abort loading the rest of the file.
    return Ring(tuple(tuple(c) if isinstance(c, (list, tuple)) else c for c in coords))


def _polygon_from_rings(rings: Sequence[Sequence[Any]], name: str) -> Optional[LandPolygon]:
    if not rings:
        return None
    return LandPolygon(
        exterior=_ring(rings[0]),
        holes=tuple(_ring(hole) for hole in rings[1:]),
        name=name,
    )


def polygons_from_geojson(obj: Any, name: str = "") -> List[LandPolygon]:
    """
    Convert GeoJSON (or any object exposing ``__geo_interface__``, such as a
    shapely geometry) into LandPolygons.

    Supports Polygon, MultiPolygon, GeometryCollection, Feature and
    FeatureCollection. Other geometry types are ignored.
    """
    if hasattr(obj, "__geo_interface__") and not isinstance(obj, dict):
        from shapely.geometry import mapping
        obj = mapping(obj)

    kind = obj.get("type")
    if kind == "FeatureCollection":
        polygons: List[LandPolygon] = []
        for i, feature in enumerate(obj.get("features", [])):
            props = feature.get("properties") or {}
            polygons.extend(
                polygons_from_geojson(feature, name=str(props.get("name", f"{name}feature_{i}")))
            )
        return polygons
    if kind == "Feature":
        props = obj.get("properties") or {}
        geometry = obj.get("geometry")
        if geometry is None:
            return []
        return polygons_from_geojson(geometry, name=str(props.get("name", name)))
    if kind == "GeometryCollection":
        polygons = []
        for geom in obj.get("geometries", []):
            polygons.extend(polygons_from_geojson(geom, name=name))
        return polygons
    if kind == "Polygon":
        poly = _polygon_from_rings(obj.get("coordinates", []), name)
        return [poly] if poly else []
    if kind == "MultiPolygon":
        polygons = []
        for i, rings in enumerate(obj.get("coordinates", [])):
            poly = _polygon_from_rings(rings, f"{name}[{i}]" if name else f"part_{i}")
            if poly:
                polygons.append(poly)
        return polygons

    logger.debug(f"Ignoring non-polygonal geometry type: {kind}")
    return []


def load_polygons(path: Path) -> List[LandPolygon]:
    """Load land polygons from a GeoJSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    polygons = polygons_from_geojson(data, name=Path(path).stem)
    logger.info(f"Loaded {len(polygons)} land polygons from {path}")
    return polygons


# ---------------------------------------------------------------------------
# Batch classification
# ---------------------------------------------------------------------------

@dataclass
class PointClassification:
    """Result of classifying a batch of points."""
    is_land: np.ndarray  # bool, one per input point
    failures: List[ClassificationFailure] = field(default_factory=list)

    @property
    def failed_polygons(self) -> List[str]:
        return [f.polygon_name for f in self.failures]


class LandClassifier:
    """
    Point-in-polygon land classifier over a fixed polygon set.

    Each point is tested independently, so batches are split into chunks
    and run on a thread pool. Chunks return their own failure tallies which
    are merged after the pool finishes; no state is shared while running.
    """

    def __init__(self, polygons: Sequence[LandPolygon], max_workers: int = 4):
        self.polygons: Tuple[LandPolygon, ...] = tuple(polygons)
        self.max_workers = max(1, max_workers)

    def _test_point(
        self, lat: float, lon: float, errors: Dict[int, Tuple[int, str]],
    ) -> bool:
        is_land = False
        for idx, poly in enumerate(self.polygons):
            try:
                if poly.contains(lat, lon):
                    is_land = True
                    break
            except Exception as e:
                count, first_error = errors.get(idx, (0, str(e)))
                errors[idx] = (count + 1, first_error)
        return is_land

    def is_land(self, lat: float, lon: float) -> bool:
        """Classify a single point. Failing polygons are skipped."""
        return self._test_point(lat, lon, {})

    def _classify_chunk(
        self, points: Sequence[Tuple[float, float]],
    ) -> Tuple[List[bool], Dict[int, Tuple[int, str]]]:
        errors: Dict[int, Tuple[int, str]] = {}
        flags = [self._test_point(lat, lon, errors) for lat, lon in points]
        return flags, errors

    def classify_points(self, points: Sequence[Tuple[float, float]]) -> PointClassification:
        """
        Classify many (lat, lon) points.

        Returns the land flags in input order plus one ClassificationFailure
        per polygon that raised, with the number of points it failed on.
        """
        points = list(points)
        if not points:
            return PointClassification(is_land=np.zeros(0, dtype=bool))

        chunks = [
            points[i:i + CLASSIFY_CHUNK_SIZE]
            for i in range(0, len(points), CLASSIFY_CHUNK_SIZE)
        ]

        if self.max_workers == 1 or len(chunks) == 1:
            results = [self._classify_chunk(chunk) for chunk in chunks]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(self._classify_chunk, chunks))

        flags: List[bool] = []
        merged: Dict[int, Tuple[int, str]] = {}
        for chunk_flags, chunk_errors in results:
            flags.extend(chunk_flags)
            for idx, (count, err) in chunk_errors.items():
                prev_count, prev_err = merged.get(idx, (0, err))
                merged[idx] = (prev_count + count, prev_err)

        failures = []
        for idx in sorted(merged):
            count, err = merged[idx]
            name = self.polygons[idx].name or f"polygon_{idx}"
            failures.append(ClassificationFailure(
                polygon_index=idx, polygon_name=name, error=err, cells_affected=count,
            ))
            logger.warning(
                f"Land polygon '{name}' skipped on {count} cells: {err}"
            )

        if failures:
            metrics.increment("classification_failures", len(failures))
        metrics.increment("cells_classified", len(points))

        return PointClassification(is_land=np.asarray(flags, dtype=bool), failures=failures)


# ---------------------------------------------------------------------------
# Coastal buffering
# ---------------------------------------------------------------------------

_EIGHT_NEIGHBOURS = np.ones((3, 3), dtype=bool)


def buffer_coastline(land_mask: np.ndarray) -> np.ndarray:
    """
    Mark water cells that touch land.

    Args:
        land_mask: 2-D bool array (rows x cols), True = land

    Returns:
        2-D bool array, True where a water cell has at least one land cell
        among its 8 neighbours. Land cells are always False. Cells outside
        the array do not count as land.
    """
    land_mask = np.asarray(land_mask, dtype=bool)
    near_land = ndimage.binary_dilation(land_mask, structure=_EIGHT_NEIGHBOURS)
    return near_land & ~land_mask


def ring_from_bbox(lat_min: float, lat_max: float, lon_min: float, lon_max: float) -> Ring:
    """Rectangular ring, handy for obstacles and simple landmasses."""
    if not (math.isfinite(lat_min) and math.isfinite(lat_max)):
        raise ValueError("Bounding box must be finite")
    return Ring((
        (lon_min, lat_min), (lon_max, lat_min), (lon_max, lat_max),
        (lon_min, lat_max), (lon_min, lat_min),
    ))
