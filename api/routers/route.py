"""
Route planning API router.

Handles route planning, strategy comparison and hazard checks against the shared grid snapshot.
Routing errors are translated to HTTP responses by the handlers in
api/main.py.
"""

import logging

from fastapi import APIRouter

from seaplan import check_hazards
from seaplan.config import get_settings as get_core_settings
from seaplan.optimization.hazard_monitor import HazardConditions, HazardZone
from seaplan.optimization.route_planner import RoutePlanner
from api.schemas import (
    CheckHazardsRequest,
    CheckHazardsResponse,
    CompareRoutesRequest,
    CompareRoutesResponse,
    PlanRouteRequest,
    PlanRouteResponse,
)
from api.state import get_grid_state

router = APIRouter(prefix="/api/route", tags=["route"])

logger = logging.getLogger(__name__)


@router.post("/plan", response_model=PlanRouteResponse)
def plan_route(request: PlanRouteRequest):
    """
    Plan a route through the requested ports.

    Returns 422 "no safe route found" when a port cannot be snapped to a
    cell meeting the clearance, or no path exists under it; 503 when no
    grid covers the request.
    """
    state = get_grid_state()
    ports = [(p.lat, p.lon) for p in request.waypoints]

    previous = request.previous_strategy
    if previous is None:
        previous = state.last_strategy(ports)

    # Snapshot reference taken once; a concurrent refresh swaps in a new
    # grid without touching this one.
    planner = RoutePlanner.from_settings(state.grid, get_core_settings())
    route = planner.plan(
        ports,
        strategy=request.strategy,
        clearance=request.clearance,
        previous_strategy=previous,
        simplify=request.simplify,
    )
    state.record_route(route)
    return PlanRouteResponse.from_route(route)


@router.post("/compare", response_model=CompareRoutesResponse)
def compare_routes(request: CompareRoutesRequest):
    """
    Plan the requested ports under every strategy.

    A strategy that finds no safe route is reported with its error while
    the others are still returned; the strategy history is not touched.
    503 when no grid covers the request.
    """
    ports = [(p.lat, p.lon) for p in request.waypoints]
    planner = RoutePlanner.from_settings(get_grid_state().grid, get_core_settings())
    comparison = planner.compare(ports, clearance=request.clearance, simplify=request.simplify)
    return CompareRoutesResponse.from_comparison(comparison)


@router.post("/check-hazards", response_model=CheckHazardsResponse)
def check_route_hazards(request: CheckHazardsRequest):
    """Intersect route waypoints with hazard zones and their local weather."""
    waypoints = [
        (wp.lat, wp.lon, wp.weather.to_sample() if wp.weather else None)
        for wp in request.waypoints
    ]
    zones = [
        HazardZone(
            name=z.name,
            lat=z.location.lat,
            lon=z.location.lon,
            radius_km=z.radius_km,
            level=z.level,
            conditions=HazardConditions(**z.conditions.model_dump()),
        )
        for z in request.hazard_zones
    ]
    report = check_hazards(waypoints, zones)
    return CheckHazardsResponse(**report.to_dict())
