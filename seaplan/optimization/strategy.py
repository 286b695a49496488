"""
Routing strategy selection.

Aggregated weather along a leg decides the strategy:

    critical wind/wave/visibility
    or rain above the safe maximum -> SAFE,    HIGH deviation   (mandatory)
    safety score < 60              -> SAFE,    MEDIUM deviation
    fuel efficiency < 70           -> FUEL,    LOW deviation
    otherwise                      -> OPTIMAL, NONE

Deviation classes scale the land clearance of the search and carry an
advisory speed reduction used for ETA/fuel estimates.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

import numpy as np

from seaplan.config import RoutingThresholds
from seaplan.optimization.weather_cost import (
    CostScore,
    WeatherSample,
    cost_bucket,
    cost_buckets,
    normalize,
    score_many,
)

logger = logging.getLogger(__name__)


class StrategyMode(str, Enum):
    OPTIMAL = "optimal"
    FUEL = "fuel"
    SAFE = "safe"


class DeviationClass(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def distance_multiplier(self) -> float:
        return _DISTANCE_MULTIPLIER[self]

    @property
    def speed_reduction_pct(self) -> float:
        return _SPEED_REDUCTION_PCT[self]


_DISTANCE_MULTIPLIER = {
    DeviationClass.NONE: 1.00,
    DeviationClass.LOW: 1.07,
    DeviationClass.MEDIUM: 1.12,
    DeviationClass.HIGH: 1.20,
}

_SPEED_REDUCTION_PCT = {
    DeviationClass.NONE: 0.0,
    DeviationClass.LOW: 5.0,
    DeviationClass.MEDIUM: 15.0,
    DeviationClass.HIGH: 25.0,
}

# Extra cost on coastal cells per strategy
COASTAL_MULTIPLIER = {
    StrategyMode.SAFE: 1.3,
    StrategyMode.OPTIMAL: 1.1,
    StrategyMode.FUEL: 1.0,
}


class ClearanceLevel(str, Enum):
    MODERATE = "moderate"
    STRICT = "strict"
    VERY_STRICT = "very-strict"

    @property
    def km(self) -> float:
        return _CLEARANCE_KM[self]


_CLEARANCE_KM = {
    ClearanceLevel.MODERATE: 10.0,
    ClearanceLevel.STRICT: 20.0,
    ClearanceLevel.VERY_STRICT: 30.0,
}


def clearance_km(clearance: Union[str, float, int, ClearanceLevel, None]) -> float:
    """Resolve a clearance level name or explicit km value."""
    if clearance is None:
        return ClearanceLevel.STRICT.km
    if isinstance(clearance, ClearanceLevel):
        return clearance.km
    if isinstance(clearance, (int, float)) and not isinstance(clearance, bool):
        if not math.isfinite(clearance) or clearance < 0:
            raise ValueError(f"Clearance must be a non-negative distance, got {clearance}")
        return float(clearance)
    try:
        return ClearanceLevel(str(clearance).lower().replace("_", "-")).km
    except ValueError:
        raise ValueError(
            f"Unknown clearance '{clearance}'; expected one of "
            f"{[c.value for c in ClearanceLevel]} or a distance in km"
        ) from None


@dataclass(frozen=True)
class RouteStrategy:
    mode: StrategyMode
    reason: str
    deviation: DeviationClass

    @property
    def speed_reduction_pct(self) -> float:
        return self.deviation.speed_reduction_pct

    @property
    def distance_multiplier(self) -> float:
        return self.deviation.distance_multiplier

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.name,
            "reason": self.reason,
            "deviation": self.deviation.value,
            "speed_reduction_pct": self.speed_reduction_pct,
        }


def parse_strategy(value: Union[str, StrategyMode, None]) -> Optional[StrategyMode]:
    """``None`` means auto selection."""
    if value is None or isinstance(value, StrategyMode):
        return value
    key = str(value).strip().lower()
    if key == "auto":
        return None
    if key in ("fuel_efficient", "fuel-efficient"):
        return StrategyMode.FUEL
    try:
        return StrategyMode(key)
    except ValueError:
        raise ValueError(
            f"Unknown strategy '{value}'; expected auto, optimal, fuel or safe"
        ) from None


# Deviation applied when the caller forces a strategy
_REQUESTED_DEVIATION = {
    StrategyMode.OPTIMAL: DeviationClass.NONE,
    StrategyMode.FUEL: DeviationClass.LOW,
    StrategyMode.SAFE: DeviationClass.MEDIUM,
}


def requested_strategy(mode: StrategyMode) -> RouteStrategy:
    return RouteStrategy(
        mode=mode,
        reason=f"Requested {mode.value} routing",
        deviation=_REQUESTED_DEVIATION[mode],
    )


@dataclass(frozen=True)
class WeatherAggregate:
    """Weather summarised over the samples along a leg."""
    safety_score: float
    fuel_efficiency: float
    max_wind_kts: float
    max_wave_height_m: float
    min_visibility_km: float
    sample_count: int
    max_precip_mm_hr: float = 0.0

    @classmethod
    def from_samples(
        cls,
        samples: Iterable[Optional[WeatherSample]],
        thresholds: Optional[RoutingThresholds] = None,
    ) -> "WeatherAggregate":
        """
        Mean scores, worst-case wind/wave/visibility/rainfall.

        Missing samples count as neutral weather.
        """
        thresholds = thresholds or RoutingThresholds()
        samples = list(samples) or [None]
        scores = score_many(samples, thresholds)
        norm = [normalize(s, thresholds.optimal_temp_c) for s in samples]
        return cls(
            safety_score=float(np.mean([s.safety for s in scores])),
            fuel_efficiency=float(np.mean([s.fuel_efficiency for s in scores])),
            max_wind_kts=max(n.wind_speed_kts for n in norm),
            max_wave_height_m=max(n.wave_height_m for n in norm),
            min_visibility_km=min(n.visibility_m for n in norm) / 1000.0,
            sample_count=len(samples),
            max_precip_mm_hr=max(n.precipitation_mm_hr for n in norm),
        )


def select_strategy(
    weather: WeatherAggregate,
    thresholds: Optional[RoutingThresholds] = None,
) -> RouteStrategy:
    """Pick the strategy for aggregated weather. Deterministic."""
    t = thresholds or RoutingThresholds()

    critical = (
        weather.max_wind_kts > t.critical_wind_factor * t.max_safe_wind_kts
        or weather.min_visibility_km < t.critical_visibility_factor * t.min_safe_visibility_km
        or weather.max_wave_height_m > t.critical_wave_factor * t.max_safe_wave_height_m
        or weather.max_precip_mm_hr > t.max_safe_rainfall_mm_hr
    )
    if critical:
        strategy = RouteStrategy(
            mode=StrategyMode.SAFE,
            reason="Critical weather conditions detected",
            deviation=DeviationClass.HIGH,
        )
    elif weather.safety_score < t.min_safety_score:
        strategy = RouteStrategy(
            mode=StrategyMode.SAFE,
            reason="Poor weather conditions",
            deviation=DeviationClass.MEDIUM,
        )
    elif weather.fuel_efficiency < t.min_fuel_efficiency:
        strategy = RouteStrategy(
            mode=StrategyMode.FUEL,
            reason="Inefficient conditions, optimize fuel",
            deviation=DeviationClass.LOW,
        )
    else:
        strategy = RouteStrategy(
            mode=StrategyMode.OPTIMAL,
            reason="Favorable conditions",
            deviation=DeviationClass.NONE,
        )

    logger.debug(
        f"Strategy {strategy.mode.name}/{strategy.deviation.value} "
        f"(safety={weather.safety_score:.1f}, fuel={weather.fuel_efficiency:.1f}, "
        f"wind={weather.max_wind_kts:.1f}kt, wave={weather.max_wave_height_m:.1f}m, "
        f"vis={weather.min_visibility_km:.1f}km)"
    )
    return strategy


def cell_cost(scores: CostScore, mode: StrategyMode, coastal: bool = False) -> float:
    """
    Traversal cost of one cell under a strategy.

    OPTIMAL uses the bucketed average, FUEL the bucket of fuel efficiency
    alone, SAFE the bucket of safety alone. Always >= 1.
    """
    if mode is StrategyMode.FUEL:
        base = cost_bucket(scores.fuel_efficiency)
    elif mode is StrategyMode.SAFE:
        base = cost_bucket(scores.safety)
    else:
        base = scores.cost
    if coastal:
        return base * COASTAL_MULTIPLIER[mode]
    return float(base)


def cell_cost_array(
    safety: np.ndarray,
    fuel: np.ndarray,
    cost: np.ndarray,
    coastal: np.ndarray,
    mode: StrategyMode,
) -> np.ndarray:
    """Vectorised ``cell_cost`` over a whole grid."""
    if mode is StrategyMode.FUEL:
        base = cost_buckets(fuel)
    elif mode is StrategyMode.SAFE:
        base = cost_buckets(safety)
    else:
        base = np.asarray(cost)
    return np.where(coastal, base * COASTAL_MULTIPLIER[mode], base).astype(float)
