"""Route planning and hazard check API schemas."""

import math
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from api.schemas.common import Position, WaypointModel, WeatherSampleModel


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


class RouteRequestBase(BaseModel):
    """Ports, clearance and simplification shared by plan and compare."""
    waypoints: List[Position] = Field(..., min_length=2)
    clearance: Union[Literal["moderate", "strict", "very-strict"], float] = Field(
        "strict", description="Clearance level name or minimum distance from land in km",
    )
    simplify: bool = Field(
        False, description="Drop intermediate cells where a straight leg stays on allowed water",
    )

    @field_validator("clearance")
    @classmethod
    def clearance_non_negative(cls, v):
        if isinstance(v, float) and (not math.isfinite(v) or v < 0):
            raise ValueError("clearance distance must be a non-negative number")
        return v


class PlanRouteRequest(RouteRequestBase):
    """Request to plan a route through two or more ports."""
    strategy: Literal["auto", "optimal", "fuel", "safe"] = "auto"
    previous_strategy: Optional[str] = Field(
        None, description="Last strategy for these endpoints; defaults to the server-side history",
    )


class CompareRoutesRequest(RouteRequestBase):
    """Request to plan the same ports under every strategy."""


class RouteStrategyModel(BaseModel):
    mode: str
    reason: str
    deviation: str
    speed_reduction_pct: float


class RouteMetricsModel(BaseModel):
    safety_score: float
    fuel_efficiency: float
    distance_km: float
    direct_distance_km: float
    duration_hrs: float
    speed_knots: float
    fuel_tons: float
    cost_currency: float
    # None when the grid holds no land
    min_clearance_km: Optional[float] = None


class RouteChangeEventModel(BaseModel):
    """Same keys as ``RouteChangeEvent.to_dict()``: ``from`` and ``to``."""
    model_config = ConfigDict(populate_by_name=True)

    from_strategy: str = Field(..., alias="from")
    to_strategy: str = Field(..., alias="to")
    reason: str
    timestamp: str


class PlanRouteResponse(BaseModel):
    waypoints: List[WaypointModel]
    strategy: RouteStrategyModel
    metrics: RouteMetricsModel
    clearance_km: float
    grid_version: int
    cells_explored: int
    change_event: Optional[RouteChangeEventModel] = None

    @classmethod
    def from_route(cls, route) -> "PlanRouteResponse":
        m = route.metrics.to_dict()
        m["min_clearance_km"] = _finite_or_none(m["min_clearance_km"])
        event = None
        if route.change_event is not None:
            event = RouteChangeEventModel(**route.change_event.to_dict())
        return cls(
            waypoints=[
                WaypointModel(
                    lat=wp.lat, lon=wp.lon, weather=WeatherSampleModel.from_sample(wp.weather),
                )
                for wp in route.waypoints
            ],
            strategy=RouteStrategyModel(**route.strategy.to_dict()),
            metrics=RouteMetricsModel(**m),
            clearance_km=route.clearance_km,
            grid_version=route.grid_version,
            cells_explored=route.cells_explored,
            change_event=event,
        )


class StrategyComparisonModel(BaseModel):
    """Either the planned route or why the strategy found none."""
    route: Optional[PlanRouteResponse] = None
    error: Optional[str] = None


class CompareRoutesResponse(BaseModel):
    # Keyed by strategy name: OPTIMAL, FUEL, SAFE
    comparison: Dict[str, StrategyComparisonModel]
    shortest: Optional[str] = None

    @classmethod
    def from_comparison(cls, comparison) -> "CompareRoutesResponse":
        entries = {}
        for mode, route in comparison.routes.items():
            entries[mode.name] = StrategyComparisonModel(route=PlanRouteResponse.from_route(route))
        for mode, error in comparison.errors.items():
            entries[mode.name] = StrategyComparisonModel(error=str(error))
        shortest = comparison.shortest
        return cls(
            comparison=entries,
            shortest=shortest.strategy.mode.name if shortest is not None else None,
        )


class HazardConditionsModel(BaseModel):
    wind_speed_kts: Optional[float] = None
    wave_height_m: Optional[float] = None
    pressure_hpa: Optional[float] = None


class HazardZoneModel(BaseModel):
    name: str
    location: Position
    radius_km: float = Field(..., gt=0)
    level: Literal["ADVISORY", "ACTIVE"] = "ACTIVE"
    conditions: HazardConditionsModel = Field(default_factory=HazardConditionsModel)


class CheckHazardsRequest(BaseModel):
    waypoints: List[WaypointModel] = Field(..., min_length=1)
    hazard_zones: List[HazardZoneModel] = Field(default_factory=list)


class HazardIntersectionModel(BaseModel):
    waypoint_index: int
    location: Position
    hazard_name: str
    severity: str
    distance_to_center_km: Optional[float] = None
    message: str


class CheckHazardsResponse(BaseModel):
    intersections: List[HazardIntersectionModel]
    requires_reroute: bool
    recommendation: str
    waypoints_checked: int


class WeatherUpdate(BaseModel):
    location: Position
    weather: WeatherSampleModel


class RefreshWeatherRequest(BaseModel):
    samples: List[WeatherUpdate] = Field(..., min_length=1)
    radius_deg: float = Field(0.0, ge=0.0, le=10.0)
