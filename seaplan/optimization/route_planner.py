"""
A* route planner over the navigable grid.

Per consecutive port pair:

1. Snap both ports to the nearest cell that is traversable *and* meets the
   clearance requirement, within ``snap_radius_deg``.
2. A* with edge cost = great circle km x strategy cell cost (1..10, with a
   coastal multiplier) and heuristic = great circle km to the goal, which is
   admissible because every cell cost is >= 1.
3. Cells closer to land than the effective clearance are never expanded;
   clearance is a hard filter, not a penalty.
4. Among equally cheap paths the one with the larger minimum clearance wins.

Segments are concatenated; any failing segment aborts the whole route.
"""

import heapq
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from seaplan.config import RoutingThresholds
from seaplan.errors import (
    EndpointUnreachable,
    GridUnavailable,
    NoPathFound,
    RoutingError,
    SearchBudgetExceeded,
)
from seaplan.metrics import metrics
from seaplan.optimization.base_planner import (
    BasePlanner,
    LatLon,
    Route,
    RouteSegment,
    VoyageParameters,
    Waypoint,
    change_event,
    estimate_metrics,
    haversine_km,
    interpolate,
    path_distance_km,
)
from seaplan.optimization.grid_builder import DIRECTIONS, NavigableGrid
from seaplan.optimization.strategy import (
    RouteStrategy,
    StrategyMode,
    WeatherAggregate,
    cell_cost_array,
    clearance_km,
    parse_strategy,
    requested_strategy,
    select_strategy,
)

logger = logging.getLogger(__name__)

CellIndex = Tuple[int, int]

# Relative tolerance when comparing path costs for the clearance tie-break
COST_TIE_TOLERANCE = 1e-9

# How often (in expansions) the deadline is checked
DEADLINE_CHECK_INTERVAL = 256

# Douglas-Peucker tolerance for simplified routes (5 nm)
SIMPLIFY_TOLERANCE_KM = 9.26

KM_PER_DEG_LAT = 111.0

# Slack when deciding whether a line touches a cell edge
LINE_EPS = 1e-9


@dataclass(order=True)
class SearchNode:
    """Node in A* search priority queue."""
    f_score: float                    # g + h
    neg_min_clearance: float          # larger clearance pops first on ties
    seq: int                          # insertion order, keeps pops deterministic
    cell: CellIndex = field(compare=False)
    g_score: float = field(compare=False)
    min_clearance: float = field(compare=False)
    parent: Optional["SearchNode"] = field(compare=False, default=None)


@dataclass
class SearchResult:
    path: List[CellIndex]
    cells_explored: int
    min_clearance_km: float
    cost: float


@dataclass(frozen=True)
class RouteComparison:
    """
    One route per strategy for the same ports and clearance.

    A strategy whose search failed has an entry in ``errors`` instead of
    ``routes``.
    """
    routes: Dict[StrategyMode, Route]
    errors: Dict[StrategyMode, RoutingError]

    def route(self, mode: StrategyMode) -> Optional[Route]:
        return self.routes.get(mode)

    @property
    def shortest(self) -> Optional[Route]:
        if not self.routes:
            return None
        return min(self.routes.values(), key=lambda r: r.metrics.distance_km)

    def to_dict(self) -> Dict[str, dict]:
        out = {}
        for mode in StrategyMode:
            if mode in self.routes:
                r = self.routes[mode]
                out[mode.name] = {
                    "distance_km": round(r.metrics.distance_km, 2),
                    "fuel_tons": round(r.metrics.fuel_tons, 3),
                    "safety_score": round(r.metrics.safety_score, 1),
                    "fuel_efficiency": round(r.metrics.fuel_efficiency, 1),
                    "waypoints": len(r.waypoints),
                }
            elif mode in self.errors:
                out[mode.name] = {"error": str(self.errors[mode])}
        return out


# -------------------------------------------------------------------
# Path simplification
# -------------------------------------------------------------------

def cells_on_line(a: CellIndex, b: CellIndex) -> List[CellIndex]:
    """
    Lattice cells whose square the straight line between two cell centres
    touches, in (row, col) index space.

    Squares the line only grazes at a corner are included, so a shortcut
    can never slip diagonally between two blocked cells.
    """
    (r0, c0), (r1, c1) = a, b
    if c0 > c1:
        (r0, c0), (r1, c1) = (r1, c1), (r0, c0)
    if c0 == c1:
        return [(r, c0) for r in range(min(r0, r1), max(r0, r1) + 1)]

    slope = (r1 - r0) / (c1 - c0)
    cells = []
    for c in range(c0, c1 + 1):
        # Part of the line inside this column's slab
        start = max(c - 0.5, c0)
        end = min(c + 0.5, c1)
        ra = r0 + slope * (start - c0)
        rb = r0 + slope * (end - c0)
        lo, hi = min(ra, rb), max(ra, rb)
        first = math.ceil(lo - 0.5 - LINE_EPS)
        last = math.floor(hi + 0.5 + LINE_EPS)
        cells.extend((r, c) for r in range(first, last + 1))
    return cells


def line_of_sight(allowed: np.ndarray, a: CellIndex, b: CellIndex) -> bool:
    """True when every cell under the straight line a-b is allowed."""
    cells = cells_on_line(a, b)
    rows = np.fromiter((c[0] for c in cells), dtype=int, count=len(cells))
    cols = np.fromiter((c[1] for c in cells), dtype=int, count=len(cells))
    return bool(allowed[rows, cols].all())


def simplify_path(
    spec,
    path: Sequence[CellIndex],
    allowed: np.ndarray,
    tolerance_km: float = SIMPLIFY_TOLERANCE_KM,
) -> List[CellIndex]:
    """
    Douglas-Peucker simplification of a searched cell path.

    A run of cells collapses to its two end points only when no cell in it
    lies more than ``tolerance_km`` off the chord *and* every lattice cell
    under the chord passes ``allowed``. A run that is straight enough but
    would cross a disallowed cell is split at its midpoint and each half
    tried again. End points are always kept.
    """
    n = len(path)
    if n <= 2:
        return list(path)

    lats, lons = spec.lats, spec.lons
    ref_lat = math.radians(float(np.mean([lats[r] for r, _ in path])))
    kx = KM_PER_DEG_LAT * math.cos(ref_lat)
    xy = [(float(lons[c]) * kx, float(lats[r]) * KM_PER_DEG_LAT) for r, c in path]

    def offset_km(i: int, first: int, last: int) -> float:
        (px, py), (ax, ay), (bx, by) = xy[i], xy[first], xy[last]
        dx, dy = bx - ax, by - ay
        chord = math.hypot(dx, dy)
        if chord == 0:
            return math.hypot(px - ax, py - ay)
        return abs(dx * (py - ay) - dy * (px - ax)) / chord

    keep = [False] * n
    keep[0] = keep[-1] = True
    stack = [(0, n - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        worst, worst_i = -1.0, first + 1
        for i in range(first + 1, last):
            d = offset_km(i, first, last)
            if d > worst:
                worst, worst_i = d, i
        if worst > tolerance_km:
            split = worst_i
        elif not line_of_sight(allowed, path[first], path[last]):
            split = (first + last) // 2
        else:
            continue
        keep[split] = True
        stack.append((first, split))
        stack.append((split, last))

    return [cell for cell, k in zip(path, keep) if k]


class RoutePlanner(BasePlanner):
    """
    Weather-aware A* planner.

    The planner holds one grid snapshot for its lifetime. Build a new
    planner (or pass the refreshed grid) after ``NavigableGrid.refresh_cost``.
    """

    def __init__(
        self,
        grid: Optional[NavigableGrid],
        thresholds: Optional[RoutingThresholds] = None,
        voyage: Optional[VoyageParameters] = None,
        snap_radius_deg: float = 0.5,
        max_expansions: int = 200_000,
        deadline_s: Optional[float] = None,
    ):
        super().__init__(voyage=voyage)
        self.grid = grid
        self.thresholds = thresholds or RoutingThresholds()
        self.snap_radius_deg = snap_radius_deg
        self.max_expansions = max_expansions
        self.deadline_s = deadline_s if deadline_s and deadline_s > 0 else None

    @classmethod
    def from_settings(cls, grid: Optional[NavigableGrid], settings) -> "RoutePlanner":
        return cls(
            grid,
            thresholds=settings.routing_thresholds(),
            voyage=VoyageParameters.from_settings(settings),
            snap_radius_deg=settings.snap_radius_deg,
            max_expansions=settings.max_expansions,
            deadline_s=settings.search_deadline_s,
        )

    # -------------------------------------------------------------------
    # Public entry point
    # -------------------------------------------------------------------

    def plan(
        self,
        waypoints: Sequence[LatLon],
        strategy: str = "auto",
        clearance="strict",
        previous_strategy: Optional[str] = None,
        now: Optional[datetime] = None,
        simplify: bool = False,
    ) -> Route:
        """
        Plan a route through ``waypoints`` in order.

        With ``strategy="auto"`` a single strategy is chosen for the whole
        route from the weather along all direct legs taken together, so bad
        weather on any one leg puts every segment under the stricter
        strategy and its wider clearance. Segments never run under
        different strategies.

        ``simplify`` runs ``simplify_path`` on each segment. By default every
        searched cell is kept and consecutive waypoints are grid neighbours.
        """
        ports = [(float(lat), float(lon)) for lat, lon in waypoints]
        if len(ports) < 2:
            raise ValueError(f"At least 2 waypoints are required, got {len(ports)}")
        if not all(math.isfinite(v) for p in ports for v in p):
            raise ValueError("Waypoints must be finite (lat, lon) pairs")

        grid = self._require_grid(ports)
        mode = parse_strategy(strategy)
        base_clearance = clearance_km(clearance)

        with metrics.timer("plan_route"):
            if mode is None:
                chosen = select_strategy(self.aggregate_weather(ports), self.thresholds)
            else:
                chosen = requested_strategy(mode)

            effective_clearance = base_clearance * chosen.distance_multiplier
            allowed = self._allowed_mask(grid, effective_clearance)
            costs = cell_cost_array(
                grid.cost_layer.safety,
                grid.cost_layer.fuel,
                grid.cost_layer.cost,
                grid.classification_layer.coastal,
                chosen.mode,
            )

            segments = []
            for origin, destination in zip(ports, ports[1:]):
                segments.append(self._plan_segment(
                    grid, origin, destination, allowed, costs, effective_clearance, simplify,
                ))

        route = self._assemble(grid, ports, segments, chosen, effective_clearance, previous_strategy, now)

        metrics.increment("routes_planned")
        metrics.increment("search_expansions", route.cells_explored)
        logger.info(
            f"Planned {chosen.mode.name} route through {len(ports)} ports: "
            f"{route.metrics.distance_km:.1f} km, {len(route.waypoints)} waypoints, "
            f"min clearance {route.metrics.min_clearance_km:.1f} km "
            f"(required {effective_clearance:.1f} km), {route.cells_explored} cells explored"
        )
        return route

    def compare(
        self,
        waypoints: Sequence[LatLon],
        clearance="strict",
        simplify: bool = False,
    ) -> RouteComparison:
        """
        Plan the same ports under every strategy.

        A strategy that cannot meet its clearance is reported in
        ``errors`` and the others are still planned. Invalid input and a
        missing grid raise as in ``plan``.
        """
        routes: Dict[StrategyMode, Route] = {}
        errors: Dict[StrategyMode, RoutingError] = {}
        for mode in StrategyMode:
            try:
                # Comparison routes are not history entries; no change event
                routes[mode] = self.plan(
                    waypoints,
                    strategy=mode,
                    clearance=clearance,
                    previous_strategy=mode.name,
                    simplify=simplify,
                )
            except (EndpointUnreachable, NoPathFound) as e:
                logger.info(f"No {mode.name} route in comparison: {e}")
                errors[mode] = e
        return RouteComparison(routes=routes, errors=errors)

    # -------------------------------------------------------------------
    # Strategy
    # -------------------------------------------------------------------

    def aggregate_weather(self, ports: Sequence[LatLon]) -> WeatherAggregate:
        """
        Weather along the direct legs between ports, sampled once per grid step.

        Cells without a sample count as neutral weather.
        """
        grid = self._require_grid(ports)
        step_km = grid.spec.resolution_deg * 111.0
        samples = []
        seen = set()
        for a, b in zip(ports, ports[1:]):
            for lat, lon in interpolate(a, b, step_km):
                idx = grid.spec.index(lat, lon)
                if idx is None or idx in seen:
                    continue
                seen.add(idx)
                samples.append(grid.cost_layer.weather.get(idx))
        return WeatherAggregate.from_samples(samples, self.thresholds)

    def select_strategy(self, ports: Sequence[LatLon]) -> RouteStrategy:
        return select_strategy(self.aggregate_weather(ports), self.thresholds)

    # -------------------------------------------------------------------
    # Snapping
    # -------------------------------------------------------------------

    def _require_grid(self, ports: Sequence[LatLon]) -> NavigableGrid:
        if self.grid is None:
            raise GridUnavailable("no grid loaded")
        for lat, lon in ports:
            if self.grid.spec.index(lat, lon) is None:
                raise GridUnavailable(f"({lat:.4f}, {lon:.4f}) is outside the grid")
        return self.grid

    @staticmethod
    def _allowed_mask(grid: NavigableGrid, min_clearance_km: float) -> np.ndarray:
        layer = grid.classification_layer
        # Small tolerance so cells exactly at the limit are accepted
        return layer.traversable & (layer.clearance_km >= min_clearance_km - 1e-6)

    def snap(self, port: LatLon, allowed: np.ndarray, min_clearance_km: float) -> CellIndex:
        """Nearest allowed cell to ``port``, or EndpointUnreachable."""
        grid = self.grid
        cell = grid.nearest_cell(
            port[0], port[1], self.snap_radius_deg,
            predicate=lambda rows, cols: allowed[rows, cols],
        )
        if cell is None:
            if grid.nearest_cell(port[0], port[1], self.snap_radius_deg) is None:
                reason = "no water cell in range"
            else:
                reason = f"water in range but none with {min_clearance_km:.1f} km clearance from land"
            raise EndpointUnreachable(port, self.snap_radius_deg, reason)
        return grid.spec.index(*cell)

    # -------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------

    def _plan_segment(
        self,
        grid: NavigableGrid,
        origin: LatLon,
        destination: LatLon,
        allowed: np.ndarray,
        costs: np.ndarray,
        min_clearance_km: float,
        simplify: bool = False,
    ) -> RouteSegment:
        start = self.snap(origin, allowed, min_clearance_km)
        goal = self.snap(destination, allowed, min_clearance_km)
        result = self.search(grid, start, goal, allowed, costs, min_clearance_km)

        cells = result.path
        path_clearance = result.min_clearance_km
        if simplify:
            cells = simplify_path(grid.spec, cells, allowed)
            path_clearance = self._shortcut_clearance(grid, cells)

        path = tuple(grid.spec.coord(r, c) for r, c in cells)
        return RouteSegment(
            origin=origin,
            destination=destination,
            start_cell=path[0],
            goal_cell=path[-1],
            path=path,
            distance_km=path_distance_km(path),
            min_clearance_km=path_clearance,
            cells_explored=result.cells_explored,
        )

    @staticmethod
    def _shortcut_clearance(grid: NavigableGrid, cells: Sequence[CellIndex]) -> float:
        """Minimum clearance over every cell a simplified path passes."""
        clearance = grid.classification_layer.clearance_km
        passed = set(cells)
        for a, b in zip(cells, cells[1:]):
            # Neighbour steps were searched as-is; longer ones are shortcuts
            if max(abs(a[0] - b[0]), abs(a[1] - b[1])) > 1:
                passed.update(cells_on_line(a, b))
        return min(float(clearance[cell]) for cell in passed)

    def search(
        self,
        grid: NavigableGrid,
        start: CellIndex,
        goal: CellIndex,
        allowed: np.ndarray,
        costs: np.ndarray,
        min_clearance_km: float = 0.0,
    ) -> SearchResult:
        """
        A* search from ``start`` to ``goal`` over cells where ``allowed`` is True.

        Raises:
            NoPathFound: the reachable region was exhausted
            SearchBudgetExceeded: expansion budget or deadline hit first
        """
        spec = grid.spec
        lats, lons = spec.lats, spec.lons
        clearance = grid.classification_layer.clearance_km
        goal_lat, goal_lon = float(lats[goal[0]]), float(lons[goal[1]])

        def heuristic(cell: CellIndex) -> float:
            return haversine_km(float(lats[cell[0]]), float(lons[cell[1]]), goal_lat, goal_lon)

        seq = 0
        start_clear = float(clearance[start])
        start_node = SearchNode(
            f_score=heuristic(start),
            neg_min_clearance=-start_clear,
            seq=seq,
            cell=start,
            g_score=0.0,
            min_clearance=start_clear,
        )
        open_set = [start_node]

        # Best (g, path-min clearance) per cell
        best: dict = {start: (0.0, start_clear)}
        closed_set = set()

        cells_explored = 0
        best_partial = start
        best_partial_h = start_node.f_score
        started = time.monotonic()

        while open_set:
            current = heapq.heappop(open_set)
            if current.cell in closed_set:
                continue

            closed_set.add(current.cell)
            cells_explored += 1

            if current.cell == goal:
                path = []
                node = current
                while node is not None:
                    path.append(node.cell)
                    node = node.parent
                path.reverse()
                return SearchResult(
                    path=path,
                    cells_explored=cells_explored,
                    min_clearance_km=current.min_clearance,
                    cost=current.g_score,
                )

            h_current = current.f_score - current.g_score
            if h_current < best_partial_h:
                best_partial, best_partial_h = current.cell, h_current

            if cells_explored >= self.max_expansions:
                self._budget_exceeded(spec, start, goal, cells_explored, best_partial, min_clearance_km)
            if (self.deadline_s is not None
                    and cells_explored % DEADLINE_CHECK_INTERVAL == 0
                    and time.monotonic() - started > self.deadline_s):
                self._budget_exceeded(spec, start, goal, cells_explored, best_partial, min_clearance_km)

            row, col = current.cell
            cur_lat, cur_lon = float(lats[row]), float(lons[col])

            for dr, dc in DIRECTIONS:
                nr, nc = row + dr, col + dc
                if not (0 <= nr < spec.rows and 0 <= nc < spec.cols):
                    continue
                neighbor = (nr, nc)
                if neighbor in closed_set or not allowed[nr, nc]:
                    continue
                # No corner cutting between two blocked cells
                if dr and dc and not (allowed[row, nc] or allowed[nr, col]):
                    continue

                step_km = haversine_km(cur_lat, cur_lon, float(lats[nr]), float(lons[nc]))
                tentative_g = current.g_score + step_km * float(costs[nr, nc])
                path_clear = min(current.min_clearance, float(clearance[nr, nc]))

                prev = best.get(neighbor)
                if prev is not None:
                    prev_g, prev_clear = prev
                    tol = COST_TIE_TOLERANCE * max(1.0, prev_g)
                    if tentative_g > prev_g + tol:
                        continue
                    if tentative_g >= prev_g - tol and path_clear <= prev_clear:
                        continue

                best[neighbor] = (tentative_g, path_clear)
                seq += 1
                heapq.heappush(open_set, SearchNode(
                    f_score=tentative_g + heuristic(neighbor),
                    neg_min_clearance=-path_clear,
                    seq=seq,
                    cell=neighbor,
                    g_score=tentative_g,
                    min_clearance=path_clear,
                    parent=current,
                ))

        raise NoPathFound(
            start=spec.coord(*start),
            goal=spec.coord(*goal),
            cells_explored=cells_explored,
            best_partial=spec.coord(*best_partial),
            clearance_km=min_clearance_km,
        )

    def _budget_exceeded(self, spec, start, goal, explored, best_partial, clearance):
        logger.warning(
            f"Search budget exhausted after {explored} expansions "
            f"(max_expansions={self.max_expansions}, deadline_s={self.deadline_s})"
        )
        metrics.increment("search_budget_exceeded")
        raise SearchBudgetExceeded(
            start=spec.coord(*start),
            goal=spec.coord(*goal),
            cells_explored=explored,
            best_partial=spec.coord(*best_partial),
            clearance_km=clearance,
        )

    # -------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------

    def _assemble(
        self,
        grid: NavigableGrid,
        ports: List[LatLon],
        segments: List[RouteSegment],
        strategy: RouteStrategy,
        effective_clearance: float,
        previous_strategy: Optional[str],
        now: Optional[datetime],
    ) -> Route:
        points = self.flatten(segments)
        indices = [grid.spec.index(lat, lon) for lat, lon in points]
        layer = grid.cost_layer

        waypoints = tuple(
            Waypoint(lat=lat, lon=lon, weather=layer.weather.get(idx))
            for (lat, lon), idx in zip(points, indices)
        )
        safety = float(np.mean([layer.safety[idx] for idx in indices]))
        fuel = float(np.mean([layer.fuel[idx] for idx in indices]))
        min_clear = min(seg.min_clearance_km for seg in segments)

        route_metrics = estimate_metrics(
            distance_km=path_distance_km(points),
            direct_distance_km=path_distance_km(ports),
            safety_score=safety,
            fuel_efficiency=fuel,
            strategy=strategy,
            min_clearance_km=min_clear,
            voyage=self.voyage,
        )

        return Route(
            ports=tuple(ports),
            waypoints=waypoints,
            strategy=strategy,
            metrics=route_metrics,
            segments=tuple(segments),
            clearance_km=effective_clearance,
            grid_version=grid.version,
            change_event=change_event(previous_strategy, strategy, now),
        )
