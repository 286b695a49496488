"""
SEAPLAN - weather-aware maritime grid routing.

Library entry points:

    grid = classify_grid(polygons, GridSpec(5, 25, 65, 90, 0.2))
    grid = refresh_cost(grid, {(15.0, 70.0): WeatherSample(wind_speed_kts=12)})
    route = plan_route(grid, [(18.96, 72.82), (13.08, 80.27)], strategy="auto")
    comparison = compare_routes(grid, [(18.96, 72.82), (13.08, 80.27)])
    report = check_hazards(route.waypoints, zones)
"""

import logging
from typing import Any, Iterable, Optional, Sequence

from seaplan.config import RoutingThresholds, get_settings
from seaplan.data.land_mask import LandPolygon
from seaplan.errors import (
    ClassificationFailure,
    EndpointUnreachable,
    GridUnavailable,
    NoPathFound,
    RoutingError,
    SearchBudgetExceeded,
)
from seaplan.optimization.base_planner import LatLon, Route, RouteHistory
from seaplan.optimization.grid_builder import GridBuilder, GridSpec, NavigableGrid, SampleInput
from seaplan.optimization.hazard_monitor import (
    HazardMonitor,
    HazardReport,
    HazardThresholds,
    HazardZone,
)
from seaplan.optimization.route_planner import RouteComparison, RoutePlanner
from seaplan.optimization.weather_cost import WeatherSample

logger = logging.getLogger(__name__)

__version__ = "0.3.0"


def classify_grid(
    polygons: Sequence[LandPolygon],
    spec: GridSpec,
    obstacles: Sequence[LandPolygon] = (),
    blocked_cells: Iterable[LatLon] = (),
    max_workers: Optional[int] = None,
) -> NavigableGrid:
    """Classify every cell of ``spec`` against the land polygons."""
    workers = max_workers or get_settings().classification_workers
    return GridBuilder(max_workers=workers).build(spec, polygons, obstacles, blocked_cells)


def refresh_cost(
    grid: NavigableGrid,
    samples: SampleInput,
    thresholds: Optional[RoutingThresholds] = None,
    radius_deg: float = 0.0,
) -> NavigableGrid:
    """New grid snapshot with the weather samples applied."""
    if grid is None:
        raise GridUnavailable("no grid loaded")
    return grid.refresh_cost(samples, thresholds or get_settings().routing_thresholds(), radius_deg)


def plan_route(
    grid: Optional[NavigableGrid],
    waypoints: Sequence[LatLon],
    strategy: str = "auto",
    clearance: Any = None,
    previous_strategy: Optional[str] = None,
    history: Optional[RouteHistory] = None,
    simplify: bool = False,
) -> Route:
    """
    Plan a route through ``waypoints``.

    When ``history`` is given, the previous strategy is read from it and the
    resulting change event (if any) is appended to it.
    """
    settings = get_settings()
    planner = RoutePlanner.from_settings(grid, settings)
    if history is not None and previous_strategy is None:
        previous_strategy = history.last_strategy(waypoints)
    route = planner.plan(
        waypoints,
        strategy=strategy,
        clearance=clearance if clearance is not None else settings.default_clearance,
        previous_strategy=previous_strategy,
        simplify=simplify,
    )
    if history is not None:
        history.record(route)
    return route


def compare_routes(
    grid: Optional[NavigableGrid],
    waypoints: Sequence[LatLon],
    clearance: Any = None,
    simplify: bool = False,
) -> RouteComparison:
    """Plan ``waypoints`` under every strategy; failures are kept per strategy."""
    settings = get_settings()
    planner = RoutePlanner.from_settings(grid, settings)
    return planner.compare(
        waypoints,
        clearance=clearance if clearance is not None else settings.default_clearance,
        simplify=simplify,
    )


def check_hazards(
    waypoints: Sequence[Any],
    hazard_zones: Sequence[HazardZone] = (),
    thresholds: Optional[HazardThresholds] = None,
) -> HazardReport:
    """Intersect route waypoints with hazard zones and local weather."""
    return HazardMonitor(thresholds).check(waypoints, hazard_zones)


__all__ = [
    "classify_grid",
    "refresh_cost",
    "plan_route",
    "compare_routes",
    "check_hazards",
    "GridSpec",
    "NavigableGrid",
    "LandPolygon",
    "WeatherSample",
    "HazardZone",
    "Route",
    "RouteComparison",
    "RouteHistory",
    "RoutingError",
    "ClassificationFailure",
    "EndpointUnreachable",
    "NoPathFound",
    "SearchBudgetExceeded",
    "GridUnavailable",
]
