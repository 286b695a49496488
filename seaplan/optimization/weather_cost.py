"""
Weather cost model.

Turns a weather sample into:
- safety score (0-100)
- fuel efficiency score (0-100)
- traversal cost (integer 1-10, lower is better)

Both scores start at 100 and lose fixed deductions per threshold band;
the first matching band of each ladder applies. The traversal cost buckets
the average of the two scores by descending decile so the route search
works on a small integer alphabet.

The model is total: missing, NaN or out-of-range inputs fall back to
neutral values and never raise.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from seaplan.config import RoutingThresholds

logger = logging.getLogger(__name__)

# Neutral values for missing or unusable fields
NEUTRAL_WIND_KTS = 10.0
NEUTRAL_WAVE_HEIGHT_M = 1.5
NEUTRAL_WAVE_PERIOD_S = 8.0
NEUTRAL_VISIBILITY_M = 10_000.0
NEUTRAL_PRECIP_MM_HR = 0.0

# Plausible physical ranges; anything outside is treated as missing
_TEMP_RANGE_C = (-80.0, 60.0)
_MAX_WIND_KTS = 250.0
_MAX_WAVE_M = 40.0
_MAX_VISIBILITY_M = 100_000.0
_MAX_PRECIP_MM_HR = 500.0
# WMO present-weather codes run 0..99
_MAX_WEATHER_CODE = 99

THUNDERSTORM_CODES = frozenset({95, 96, 99})
SNOW_CODES = frozenset({71, 73, 75, 77, 85, 86})

# (threshold, deduction) pairs, most severe first. "above" ladders trigger
# on value > threshold, "below" ladders on value < threshold.
SAFETY_WIND_ABOVE = ((25.0, 50), (20.0, 40), (15.0, 30), (10.0, 15), (5.0, 5))
SAFETY_WAVE_ABOVE = ((6.0, 40), (4.0, 30), (2.5, 20), (1.5, 10))
SAFETY_PRECIP_ABOVE = ((10.0, 20), (5.0, 15), (1.0, 5))
SAFETY_VISIBILITY_BELOW = ((1000.0, 30), (5000.0, 15), (8000.0, 5))
THUNDERSTORM_DEDUCTION = 40
SNOW_DEDUCTION = 25

FUEL_WIND_ABOVE = ((20.0, 40), (15.0, 30), (10.0, 20))
FUEL_CALM_WIND_KTS = 3.0      # engines run less efficiently when becalmed
FUEL_CALM_DEDUCTION = 10
FUEL_WAVE_ABOVE = ((5.0, 40), (3.0, 30), (2.0, 20), (1.0, 10))
FUEL_FREEZING_C = 0.0
FUEL_COLD_C = 5.0
FUEL_HOT_C = 35.0
FUEL_FREEZING_DEDUCTION = 15
FUEL_COLD_DEDUCTION = 10
FUEL_HOT_DEDUCTION = 10
FUEL_HEAVY_PRECIP_MM_HR = 5.0
FUEL_PRECIP_DEDUCTION = 15


@dataclass(frozen=True)
class WeatherSample:
    """
    One weather observation/forecast at a coordinate.

    Every field is optional; the cost model substitutes neutral values.
    Units: knots, metres, seconds, mm/hr, percent, degrees Celsius.
    """
    temperature_c: Optional[float] = None
    wind_speed_kts: Optional[float] = None
    wind_dir_deg: Optional[float] = None
    wave_height_m: Optional[float] = None
    wave_period_s: Optional[float] = None
    visibility_m: Optional[float] = None
    precipitation_mm_hr: Optional[float] = None
    cloud_cover_pct: Optional[float] = None
    weather_code: Optional[int] = None
    timestamp: Optional[datetime] = None

    # Provider field names (camelCase feed) -> our field names
    _ALIASES = {
        "temperature": "temperature_c",
        "windSpeed": "wind_speed_kts",
        "windDirection": "wind_dir_deg",
        "waveHeight": "wave_height_m",
        "wavePeriod": "wave_period_s",
        "visibility": "visibility_m",
        "precipitation": "precipitation_mm_hr",
        "cloudCover": "cloud_cover_pct",
        "weatherCode": "weather_code",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeatherSample":
        """Build from a provider record, accepting camelCase or snake_case keys."""
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = cls._ALIASES.get(key, key)
            if name in cls.__dataclass_fields__ and not name.startswith("_"):
                kwargs[name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class CostScore:
    """Derived scores for one sample."""
    safety: float
    fuel_efficiency: float
    cost: int


@dataclass(frozen=True)
class NormalizedWeather:
    """A sample with every field filled in and range-checked."""
    temperature_c: float
    wind_speed_kts: float
    wind_dir_deg: float
    wave_height_m: float
    wave_period_s: float
    visibility_m: float
    precipitation_mm_hr: float
    weather_code: Optional[int]


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def _finite(value: Any) -> Optional[float]:
    try:
        v = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return v if math.isfinite(v) else None


def _in_range(value: Any, lo: float, hi: float, default: float) -> float:
    v = _finite(value)
    if v is None or v < lo or v > hi:
        return default
    return v


def visibility_from_cloud_cover(cloud_cover_pct: Optional[float]) -> float:
    """Estimate visibility (m) from cloud cover when no direct reading exists."""
    cc = _finite(cloud_cover_pct)
    if cc is None or cc <= 0:
        return NEUTRAL_VISIBILITY_M
    if cc > 90:
        return 2000.0
    if cc > 70:
        return 5000.0
    if cc > 50:
        return 8000.0
    return NEUTRAL_VISIBILITY_M


def normalize(sample: Optional[WeatherSample], optimal_temp_c: float = 25.0) -> NormalizedWeather:
    """Fill gaps and drop out-of-range values."""
    if sample is None:
        sample = WeatherSample()

    visibility = _finite(sample.visibility_m)
    if visibility is None or visibility < 0 or visibility > _MAX_VISIBILITY_M:
        visibility = visibility_from_cloud_cover(sample.cloud_cover_pct)

    code = _finite(sample.weather_code)
    code = int(code) if code is not None and 0 <= code <= _MAX_WEATHER_CODE else None

    wind_dir = _finite(sample.wind_dir_deg)

    return NormalizedWeather(
        temperature_c=_in_range(sample.temperature_c, *_TEMP_RANGE_C, optimal_temp_c),
        wind_speed_kts=_in_range(sample.wind_speed_kts, 0.0, _MAX_WIND_KTS, NEUTRAL_WIND_KTS),
        wind_dir_deg=(wind_dir % 360.0) if wind_dir is not None else 0.0,
        wave_height_m=_in_range(sample.wave_height_m, 0.0, _MAX_WAVE_M, NEUTRAL_WAVE_HEIGHT_M),
        wave_period_s=_in_range(sample.wave_period_s, 0.0, 60.0, NEUTRAL_WAVE_PERIOD_S),
        visibility_m=visibility,
        precipitation_mm_hr=_in_range(
            sample.precipitation_mm_hr, 0.0, _MAX_PRECIP_MM_HR, NEUTRAL_PRECIP_MM_HR
        ),
        weather_code=code,
    )


# ---------------------------------------------------------------------------
# Ladders (vectorised)
# ---------------------------------------------------------------------------

def _ladder_above(values: np.ndarray, ladder: Sequence[Tuple[float, int]]) -> np.ndarray:
    conds = [values > threshold for threshold, _ in ladder]
    return np.select(conds, [d for _, d in ladder], default=0)


def _ladder_below(values: np.ndarray, ladder: Sequence[Tuple[float, int]]) -> np.ndarray:
    conds = [values < threshold for threshold, _ in ladder]
    return np.select(conds, [d for _, d in ladder], default=0)


def safety_scores(
    wind: np.ndarray,
    wave: np.ndarray,
    precip: np.ndarray,
    visibility: np.ndarray,
    codes: np.ndarray,
) -> np.ndarray:
    """Vectorised safety ladder. ``codes`` uses -1 for unknown."""
    score = (
        100.0
        - _ladder_above(wind, SAFETY_WIND_ABOVE)
        - _ladder_above(wave, SAFETY_WAVE_ABOVE)
        - _ladder_above(precip, SAFETY_PRECIP_ABOVE)
        - _ladder_below(visibility, SAFETY_VISIBILITY_BELOW)
    )
    score = score - np.where(np.isin(codes, list(THUNDERSTORM_CODES)), THUNDERSTORM_DEDUCTION, 0)
    score = score - np.where(np.isin(codes, list(SNOW_CODES)), SNOW_DEDUCTION, 0)
    return np.clip(score, 0.0, 100.0)


def fuel_efficiency_scores(
    wind: np.ndarray,
    wave: np.ndarray,
    temperature: np.ndarray,
    precip: np.ndarray,
) -> np.ndarray:
    """Vectorised fuel-efficiency ladder."""
    wind_penalty = np.select(
        [wind > t for t, _ in FUEL_WIND_ABOVE] + [wind < FUEL_CALM_WIND_KTS],
        [d for _, d in FUEL_WIND_ABOVE] + [FUEL_CALM_DEDUCTION],
        default=0,
    )
    temp_penalty = np.select(
        [temperature < FUEL_FREEZING_C, temperature < FUEL_COLD_C, temperature > FUEL_HOT_C],
        [FUEL_FREEZING_DEDUCTION, FUEL_COLD_DEDUCTION, FUEL_HOT_DEDUCTION],
        default=0,
    )
    score = (
        100.0
        - wind_penalty
        - _ladder_above(wave, FUEL_WAVE_ABOVE)
        - temp_penalty
        - np.where(precip > FUEL_HEAVY_PRECIP_MM_HR, FUEL_PRECIP_DEDUCTION, 0)
    )
    return np.clip(score, 0.0, 100.0)


def cost_buckets(scores: np.ndarray) -> np.ndarray:
    """Map 0-100 scores to integer cost 1..10 (>=90 -> 1, <10 -> 10)."""
    scores = np.clip(np.asarray(scores, dtype=float), 0.0, 100.0)
    return np.clip(10 - np.floor(scores / 10.0), 1, 10).astype(int)


def cost_bucket(score: float) -> int:
    return int(cost_buckets(np.array([score]))[0])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def score_many(
    samples: Iterable[Optional[WeatherSample]],
    thresholds: Optional[RoutingThresholds] = None,
) -> List[CostScore]:
    """Score a batch of samples in one vectorised pass."""
    optimal_temp = (thresholds or RoutingThresholds()).optimal_temp_c
    norm = [normalize(s, optimal_temp) for s in samples]
    if not norm:
        return []

    wind = np.array([n.wind_speed_kts for n in norm])
    wave = np.array([n.wave_height_m for n in norm])
    precip = np.array([n.precipitation_mm_hr for n in norm])
    vis = np.array([n.visibility_m for n in norm])
    temp = np.array([n.temperature_c for n in norm])
    codes = np.array([n.weather_code if n.weather_code is not None else -1 for n in norm])

    safety = safety_scores(wind, wave, precip, vis, codes)
    fuel = fuel_efficiency_scores(wind, wave, temp, precip)
    costs = cost_buckets((safety + fuel) / 2.0)

    return [
        CostScore(safety=float(s), fuel_efficiency=float(f), cost=int(c))
        for s, f, c in zip(safety, fuel, costs)
    ]


def score(
    sample: Optional[WeatherSample],
    thresholds: Optional[RoutingThresholds] = None,
) -> CostScore:
    """Score one sample. Never raises."""
    return score_many([sample], thresholds)[0]


NEUTRAL_SCORE = score(None)
