"""Grid, weather cost, route planning and hazard monitoring."""

from .weather_cost import WeatherSample, CostScore, score, score_many
from .strategy import (
    ClearanceLevel,
    DeviationClass,
    RouteStrategy,
    StrategyMode,
    WeatherAggregate,
    select_strategy,
)
from .base_planner import (
    BasePlanner,
    Route,
    RouteChangeEvent,
    RouteHistory,
    RouteMetrics,
    RouteSegment,
    VoyageParameters,
    Waypoint,
)
from .grid_builder import (
    Classification,
    ClassificationLayer,
    CostLayer,
    GridBuilder,
    GridCell,
    GridSpec,
    NavigableGrid,
    Zone,
)
from .route_planner import RoutePlanner
from .hazard_monitor import (
    HazardConditions,
    HazardIntersection,
    HazardLevel,
    HazardMonitor,
    HazardReport,
    HazardThresholds,
    HazardZone,
    Severity,
    cyclone_warnings,
    detect_cyclone,
)

__all__ = [
    "WeatherSample",
    "CostScore",
    "score",
    "score_many",
    "ClearanceLevel",
    "DeviationClass",
    "RouteStrategy",
    "StrategyMode",
    "WeatherAggregate",
    "select_strategy",
    "BasePlanner",
    "Route",
    "RouteChangeEvent",
    "RouteHistory",
    "RouteMetrics",
    "RouteSegment",
    "VoyageParameters",
    "Waypoint",
    "Classification",
    "ClassificationLayer",
    "CostLayer",
    "GridBuilder",
    "GridCell",
    "GridSpec",
    "NavigableGrid",
    "Zone",
    "RoutePlanner",
    "HazardConditions",
    "HazardIntersection",
    "HazardLevel",
    "HazardMonitor",
    "HazardReport",
    "HazardThresholds",
    "HazardZone",
    "Severity",
    "cyclone_warnings",
    "detect_cyclone",
]
