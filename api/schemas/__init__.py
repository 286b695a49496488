"""
SEAPLAN API Pydantic schemas.

Re-exports all schema classes:
    from api.schemas import Position, PlanRouteRequest, ...
"""

# Common
from .common import Position, WaypointModel, WeatherSampleModel  # noqa: F401

# Routing
from .route import (  # noqa: F401
    RouteRequestBase,
    PlanRouteRequest,
    PlanRouteResponse,
    CompareRoutesRequest,
    CompareRoutesResponse,
    StrategyComparisonModel,
    RouteStrategyModel,
    RouteMetricsModel,
    RouteChangeEventModel,
    HazardConditionsModel,
    HazardZoneModel,
    CheckHazardsRequest,
    HazardIntersectionModel,
    CheckHazardsResponse,
    WeatherUpdate,
    RefreshWeatherRequest,
)
