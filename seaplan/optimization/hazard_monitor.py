"""
Hazard monitoring for planned routes.

Two independent checks per waypoint:

- hazard zones (cyclones and similar): great circle distance to the zone
  centre, intersecting when inside the radius. Severity starts from the
  zone's level and escalates with proximity to the centre.
- local weather: wind, waves and visibility against static thresholds.

The monitor is read-only and deterministic. Reports carry no wall-clock
fields, so identical inputs give identical output.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from seaplan.optimization.base_planner import Waypoint, haversine_km
from seaplan.optimization.weather_cost import WeatherSample, normalize

logger = logging.getLogger(__name__)


class HazardLevel(str, Enum):
    ADVISORY = "ADVISORY"
    ACTIVE = "ACTIVE"


class Severity(str, Enum):
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def escalate(self) -> "Severity":
        return _SEVERITY_ORDER[min(self.rank + 1, len(_SEVERITY_ORDER) - 1)]


_SEVERITY_ORDER = [Severity.MODERATE, Severity.HIGH, Severity.CRITICAL]

_BASE_SEVERITY = {
    HazardLevel.ADVISORY: Severity.MODERATE,
    HazardLevel.ACTIVE: Severity.HIGH,
}

# Fractions of the zone radius
ESCALATE_WITHIN = 0.5
CRITICAL_WITHIN = 0.25


@dataclass(frozen=True)
class HazardConditions:
    wind_speed_kts: Optional[float] = None
    wave_height_m: Optional[float] = None
    pressure_hpa: Optional[float] = None


@dataclass(frozen=True)
class HazardZone:
    """An active hazard supplied by an external feed."""
    name: str
    lat: float
    lon: float
    radius_km: float
    level: HazardLevel = HazardLevel.ACTIVE
    conditions: HazardConditions = field(default_factory=HazardConditions)
    category: str = ""

    def __post_init__(self):
        if not (math.isfinite(self.lat) and math.isfinite(self.lon)):
            raise ValueError(f"Hazard '{self.name}' has a non-finite centre")
        if not math.isfinite(self.radius_km) or self.radius_km <= 0:
            raise ValueError(f"Hazard '{self.name}' radius must be positive, got {self.radius_km}")
        if not isinstance(self.level, HazardLevel):
            object.__setattr__(self, "level", HazardLevel(str(self.level).upper()))


@dataclass(frozen=True)
class HazardThresholds:
    wind_moderate_kts: float = 15.0
    wind_high_kts: float = 25.0
    wind_severe_kts: float = 35.0
    wave_moderate_m: float = 2.5
    wave_high_m: float = 4.0
    wave_severe_m: float = 6.0
    visibility_low_km: float = 5.0
    visibility_poor_km: float = 2.0


@dataclass(frozen=True)
class HazardIntersection:
    waypoint_index: int
    lat: float
    lon: float
    hazard_name: str
    severity: Severity
    message: str
    distance_to_center_km: Optional[float] = None  # None for weather hazards

    def to_dict(self) -> Dict[str, Any]:
        return {
            "waypoint_index": self.waypoint_index,
            "location": {"lat": self.lat, "lon": self.lon},
            "hazard_name": self.hazard_name,
            "severity": self.severity.value,
            "distance_to_center_km": (
                round(self.distance_to_center_km, 1)
                if self.distance_to_center_km is not None else None
            ),
            "message": self.message,
        }


@dataclass(frozen=True)
class HazardReport:
    intersections: Tuple[HazardIntersection, ...]
    requires_reroute: bool
    recommendation: str
    waypoints_checked: int

    @property
    def worst_severity(self) -> Optional[Severity]:
        if not self.intersections:
            return None
        return max((i.severity for i in self.intersections), key=lambda s: s.rank)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intersections": [i.to_dict() for i in self.intersections],
            "requires_reroute": self.requires_reroute,
            "recommendation": self.recommendation,
            "waypoints_checked": self.waypoints_checked,
        }


def _as_waypoint(item: Any) -> Waypoint:
    if isinstance(item, Waypoint):
        return item
    if len(item) == 3:
        lat, lon, weather = item
        return Waypoint(lat=float(lat), lon=float(lon), weather=weather)
    lat, lon = item
    return Waypoint(lat=float(lat), lon=float(lon))


def zone_severity(zone: HazardZone, distance_km: float) -> Severity:
    """Severity for a point ``distance_km`` from the zone centre (inside the radius)."""
    if distance_km < CRITICAL_WITHIN * zone.radius_km:
        return Severity.CRITICAL
    severity = _BASE_SEVERITY[zone.level]
    if distance_km < ESCALATE_WITHIN * zone.radius_km:
        severity = severity.escalate()
    return severity


class HazardMonitor:
    """Checks route waypoints against hazard zones and local weather."""

    def __init__(self, thresholds: Optional[HazardThresholds] = None):
        self.thresholds = thresholds or HazardThresholds()

    def weather_severity(self, sample: WeatherSample) -> Optional[Severity]:
        t = self.thresholds
        w = normalize(sample)
        vis_km = w.visibility_m / 1000.0
        if (w.wind_speed_kts >= t.wind_severe_kts
                or w.wave_height_m >= t.wave_severe_m
                or vis_km <= t.visibility_poor_km):
            return Severity.CRITICAL
        if (w.wind_speed_kts >= t.wind_high_kts
                or w.wave_height_m >= t.wave_high_m
                or vis_km <= t.visibility_low_km):
            return Severity.HIGH
        if w.wind_speed_kts >= t.wind_moderate_kts or w.wave_height_m >= t.wave_moderate_m:
            return Severity.MODERATE
        return None

    def check(
        self,
        waypoints: Sequence[Any],
        zones: Sequence[HazardZone] = (),
    ) -> HazardReport:
        """
        Evaluate every waypoint.

        Waypoints may be ``Waypoint`` objects, (lat, lon) pairs or
        (lat, lon, WeatherSample) triples. Points without weather only get
        the zone check.
        """
        intersections: List[HazardIntersection] = []
        points = [_as_waypoint(wp) for wp in waypoints]

        for i, wp in enumerate(points):
            for zone in zones:
                distance = haversine_km(wp.lat, wp.lon, zone.lat, zone.lon)
                if distance > zone.radius_km:
                    continue
                severity = zone_severity(zone, distance)
                intersections.append(HazardIntersection(
                    waypoint_index=i,
                    lat=wp.lat,
                    lon=wp.lon,
                    hazard_name=zone.name,
                    severity=severity,
                    message=(
                        f"Route passes through {zone.name}, "
                        f"{distance:.0f} km from centre ({severity.value})"
                    ),
                    distance_to_center_km=distance,
                ))

            if wp.weather is not None:
                severity = self.weather_severity(wp.weather)
                if severity is not None:
                    w = normalize(wp.weather)
                    intersections.append(HazardIntersection(
                        waypoint_index=i,
                        lat=wp.lat,
                        lon=wp.lon,
                        hazard_name="weather",
                        severity=severity,
                        message=(
                            f"{severity.value} conditions at waypoint {i}: "
                            f"wind {w.wind_speed_kts:.1f} kts, waves {w.wave_height_m:.1f} m, "
                            f"visibility {w.visibility_m / 1000.0:.1f} km"
                        ),
                    ))

        requires_reroute = any(i.severity is Severity.CRITICAL for i in intersections)
        if requires_reroute:
            recommendation = "CRITICAL: Immediate route recalculation recommended"
        elif intersections:
            recommendation = "Monitor conditions closely, consider alternative route"
        else:
            recommendation = "Route conditions are safe"

        if intersections:
            logger.info(
                f"Hazard check: {len(intersections)} intersections over {len(points)} waypoints, "
                f"reroute={'yes' if requires_reroute else 'no'}"
            )

        return HazardReport(
            intersections=tuple(intersections),
            requires_reroute=requires_reroute,
            recommendation=recommendation,
            waypoints_checked=len(points),
        )


# ---------------------------------------------------------------------------
# Cyclone detection from point weather
# ---------------------------------------------------------------------------

def detect_cyclone(
    lat: float,
    lon: float,
    sample: WeatherSample,
    pressure_hpa: Optional[float] = None,
    gust_kts: Optional[float] = None,
    name: Optional[str] = None,
) -> Optional[HazardZone]:
    """
    Turn a point observation into a hazard zone when it looks like a cyclone.

    Criteria: tropical-storm wind with high seas, storm-force wind with low
    pressure, or hurricane-force gusts.
    """
    w = normalize(sample)
    wind = w.wind_speed_kts
    wave = w.wave_height_m
    pressure = pressure_hpa if pressure_hpa is not None and math.isfinite(pressure_hpa) else 1013.0
    gust = gust_kts if gust_kts is not None and math.isfinite(gust_kts) else 0.0

    is_cyclone = (
        (wind >= 34 and wave >= 4)
        or (wind >= 50 and pressure < 990)
        or gust >= 64
    )
    if not is_cyclone:
        return None

    if wind >= 64:
        category, level, radius = "Severe Cyclonic Storm", HazardLevel.ACTIVE, 300.0
    elif wind >= 48:
        category, level, radius = "Cyclonic Storm", HazardLevel.ACTIVE, 250.0
    else:
        category, level, radius = "Deep Depression / Tropical Storm", HazardLevel.ADVISORY, 200.0

    zone = HazardZone(
        name=name or f"System {lat:.1f}N {lon:.1f}E",
        lat=lat,
        lon=lon,
        radius_km=radius,
        level=level,
        conditions=HazardConditions(
            wind_speed_kts=wind, wave_height_m=wave, pressure_hpa=pressure,
        ),
        category=category,
    )
    logger.warning(f"Cyclone detected: {category} at ({lat:.2f}, {lon:.2f}), {wind:.0f} kts")
    return zone


def cyclone_warnings(wind_kts: float, wave_height_m: float, pressure_hpa: float = 1013.0) -> List[str]:
    """Plain-text warnings for a system's intensity."""
    warnings: List[str] = []

    if wind_kts >= 64:
        warnings += [
            "SEVERE CYCLONIC STORM - EXTREME DANGER",
            "All vessels must seek immediate shelter",
            "Navigation suspended in affected area",
        ]
    elif wind_kts >= 48:
        warnings += [
            "CYCLONIC STORM WARNING",
            "Dangerous conditions - avoid area",
            "Small craft should not sail",
        ]
    elif wind_kts >= 34:
        warnings += [
            "TROPICAL STORM CONDITIONS",
            "Exercise extreme caution",
        ]

    if wave_height_m >= 8:
        warnings.append(f"PHENOMENAL SEAS: {wave_height_m:.1f}m waves")
    elif wave_height_m >= 6:
        warnings.append(f"VERY HIGH SEAS: {wave_height_m:.1f}m waves")
    elif wave_height_m >= 4:
        warnings.append(f"HIGH SEAS: {wave_height_m:.1f}m waves")

    if pressure_hpa < 970:
        warnings.append("VERY LOW PRESSURE - Intensification likely")
    elif pressure_hpa < 990:
        warnings.append("LOW PRESSURE SYSTEM")

    return warnings
