"""
Abstract base class and shared result types for route planners.

``Route`` and its parts live here (rather than in route_planner.py) so the
hazard monitor, the API layer and every planner can import them without
circular dependencies.

Shared geometry helpers and voyage estimation are also implemented here so
subclasses don't duplicate them.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from seaplan.optimization.strategy import RouteStrategy
from seaplan.optimization.weather_cost import WeatherSample

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
KM_PER_NM = 1.852

LatLon = Tuple[float, float]


# -------------------------------------------------------------------
# Geometry helpers
# -------------------------------------------------------------------

def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great circle distance in kilometres."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
         * math.sin(dlon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.asin(math.sqrt(min(1.0, a)))


def haversine_km_array(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Great circle distance (km) from one point to many."""
    lat_r = np.radians(lat)
    lats_r = np.radians(lats)
    dlat = lats_r - lat_r
    dlon = np.radians(np.asarray(lons) - lon)
    a = np.sin(dlat / 2) ** 2 + np.cos(lat_r) * np.cos(lats_r) * np.sin(dlon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def path_distance_km(points: Sequence[LatLon]) -> float:
    """Cumulative great circle length of a polyline."""
    return sum(
        haversine_km(a[0], a[1], b[0], b[1])
        for a, b in zip(points, points[1:])
    )


def interpolate(start: LatLon, end: LatLon, step_km: float) -> List[LatLon]:
    """Points along the straight (lat/lon linear) line, roughly step_km apart."""
    dist = haversine_km(start[0], start[1], end[0], end[1])
    n = max(1, int(math.ceil(dist / max(step_km, 1e-6))))
    return [
        (start[0] + (end[0] - start[0]) * i / n, start[1] + (end[1] - start[1]) * i / n)
        for i in range(n + 1)
    ]


# -------------------------------------------------------------------
# Result dataclasses
# -------------------------------------------------------------------

@dataclass(frozen=True)
class Waypoint:
    """A point on a returned route, with the weather sampled there if any."""
    lat: float
    lon: float
    weather: Optional[WeatherSample] = None

    @property
    def position(self) -> LatLon:
        return (self.lat, self.lon)


@dataclass(frozen=True)
class RouteMetrics:
    """Voyage estimates for a planned route."""
    safety_score: float
    fuel_efficiency: float
    distance_km: float
    direct_distance_km: float
    duration_hrs: float
    speed_knots: float
    fuel_tons: float
    cost_currency: float
    min_clearance_km: float

    @property
    def detour_ratio(self) -> float:
        if self.direct_distance_km <= 0:
            return 1.0
        return self.distance_km / self.direct_distance_km

    def to_dict(self) -> Dict[str, float]:
        return {
            "safety_score": round(self.safety_score, 1),
            "fuel_efficiency": round(self.fuel_efficiency, 1),
            "distance_km": round(self.distance_km, 2),
            "direct_distance_km": round(self.direct_distance_km, 2),
            "duration_hrs": round(self.duration_hrs, 2),
            "speed_knots": round(self.speed_knots, 2),
            "fuel_tons": round(self.fuel_tons, 3),
            "cost_currency": round(self.cost_currency, 2),
            "min_clearance_km": round(self.min_clearance_km, 2),
        }


@dataclass(frozen=True)
class RouteSegment:
    """One port-to-port leg of a route."""
    origin: LatLon          # requested port position
    destination: LatLon
    start_cell: LatLon      # snapped grid cells
    goal_cell: LatLon
    path: Tuple[LatLon, ...]
    distance_km: float
    min_clearance_km: float
    cells_explored: int


@dataclass(frozen=True)
class RouteChangeEvent:
    """Emitted when the strategy for an endpoint pair changes."""
    from_strategy: str      # "INITIAL" when there was no predecessor
    to_strategy: str
    reason: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, str]:
        return {
            "from": self.from_strategy,
            "to": self.to_strategy,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


INITIAL_STRATEGY = "INITIAL"


@dataclass(frozen=True)
class Route:
    """A planned route. Immutable; the next planning call supersedes it."""
    ports: Tuple[LatLon, ...]
    waypoints: Tuple[Waypoint, ...]
    strategy: RouteStrategy
    metrics: RouteMetrics
    segments: Tuple[RouteSegment, ...]
    clearance_km: float
    grid_version: int
    change_event: Optional[RouteChangeEvent] = None

    @property
    def positions(self) -> List[LatLon]:
        return [wp.position for wp in self.waypoints]

    @property
    def endpoints(self) -> Tuple[LatLon, LatLon]:
        return self.ports[0], self.ports[-1]

    @property
    def cells_explored(self) -> int:
        return sum(seg.cells_explored for seg in self.segments)


# -------------------------------------------------------------------
# Strategy change log
# -------------------------------------------------------------------

def endpoint_key(ports: Sequence[LatLon], precision: int = 4) -> Tuple[LatLon, LatLon]:
    start, end = ports[0], ports[-1]
    return (
        (round(start[0], precision), round(start[1], precision)),
        (round(end[0], precision), round(end[1], precision)),
    )


class RouteHistory:
    """
    Append-only log of strategy changes, keyed by endpoint pair.

    Owned by the caller. The planner only reads ``last_strategy`` (through
    the ``previous_strategy`` argument) and stamps the resulting event onto
    the route; ``record`` appends it here.
    """

    def __init__(self):
        self._events: Dict[Tuple[LatLon, LatLon], List[RouteChangeEvent]] = {}

    def last_strategy(self, ports: Sequence[LatLon]) -> Optional[str]:
        events = self._events.get(endpoint_key(ports))
        return events[-1].to_strategy if events else None

    def record(self, route: Route) -> Optional[RouteChangeEvent]:
        """Append the route's change event, if any. Returns it."""
        event = route.change_event
        if event is None:
            return None
        self._events.setdefault(endpoint_key(route.ports), []).append(event)
        logger.info(
            f"Route strategy change {event.from_strategy} -> {event.to_strategy}: {event.reason}"
        )
        return event

    def events(self, ports: Sequence[LatLon]) -> List[RouteChangeEvent]:
        return list(self._events.get(endpoint_key(ports), []))

    def __len__(self) -> int:
        return sum(len(v) for v in self._events.values())


def change_event(
    previous: Optional[str], strategy: RouteStrategy, now: Optional[datetime] = None,
) -> Optional[RouteChangeEvent]:
    """Build a RouteChangeEvent when the strategy differs from ``previous``."""
    current = strategy.mode.name
    if previous is not None and previous.upper() == current:
        return None
    return RouteChangeEvent(
        from_strategy=previous.upper() if previous else INITIAL_STRATEGY,
        to_strategy=current,
        reason=strategy.reason,
        timestamp=now or datetime.now(timezone.utc),
    )


# -------------------------------------------------------------------
# Voyage estimation
# -------------------------------------------------------------------

@dataclass(frozen=True)
class VoyageParameters:
    """Vessel figures used for ETA and fuel estimates."""
    base_speed_kts: float = 22.0
    base_fuel_rate_tph: float = 3.2
    fuel_price_per_ton: float = 49_800.0

    @classmethod
    def from_settings(cls, settings) -> "VoyageParameters":
        return cls(
            base_speed_kts=settings.base_speed_kts,
            base_fuel_rate_tph=settings.base_fuel_rate_tph,
            fuel_price_per_ton=settings.fuel_price_per_ton,
        )


def estimate_metrics(
    distance_km: float,
    direct_distance_km: float,
    safety_score: float,
    fuel_efficiency: float,
    strategy: RouteStrategy,
    min_clearance_km: float,
    voyage: Optional[VoyageParameters] = None,
) -> RouteMetrics:
    """
    Duration, fuel and cost for a path of ``distance_km``.

    The strategy's speed reduction only affects these estimates, never the
    search.
    """
    voyage = voyage or VoyageParameters()
    speed = voyage.base_speed_kts * (1 - strategy.speed_reduction_pct / 100.0)
    duration = (distance_km / KM_PER_NM) / speed if speed > 0 else 0.0
    weather_factor = 1 + (100.0 - fuel_efficiency) / 100.0
    fuel = duration * voyage.base_fuel_rate_tph * weather_factor

    return RouteMetrics(
        safety_score=safety_score,
        fuel_efficiency=fuel_efficiency,
        distance_km=distance_km,
        direct_distance_km=direct_distance_km,
        duration_hrs=duration,
        speed_knots=speed,
        fuel_tons=fuel,
        cost_currency=fuel * voyage.fuel_price_per_ton,
        min_clearance_km=min_clearance_km,
    )


# -------------------------------------------------------------------
# Abstract planner
# -------------------------------------------------------------------

class BasePlanner(ABC):
    """
    Interface for route planners.

    Subclasses implement ``plan`` and return a ``Route`` so the API layer
    can treat every planner identically.
    """

    def __init__(self, voyage: Optional[VoyageParameters] = None):
        self.voyage = voyage or VoyageParameters()

    @abstractmethod
    def plan(
        self,
        waypoints: Sequence[LatLon],
        strategy: str = "auto",
        clearance="strict",
        previous_strategy: Optional[str] = None,
    ) -> Route:
        """
        Plan a route through ``waypoints`` in order.

        Parameters
        ----------
        waypoints : two or more (lat, lon) ports
        strategy : "auto", "optimal", "fuel" or "safe"
        clearance : "moderate", "strict", "very-strict" or a distance in km
        previous_strategy : last strategy used for the same endpoints

        Returns
        -------
        Route
        """
        ...

    @property
    def planner_name(self) -> str:
        return self.__class__.__name__

    @staticmethod
    def flatten(segments: Iterable[RouteSegment]) -> List[LatLon]:
        """Concatenate segment paths, dropping repeated joins."""
        points: List[LatLon] = []
        for seg in segments:
            for p in seg.path:
                if not points or points[-1] != p:
                    points.append(p)
        return points
