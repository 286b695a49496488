"""Common shared schemas used across multiple domains."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from seaplan.optimization.weather_cost import WeatherSample


class Position(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class WeatherSampleModel(BaseModel):
    """Point weather. Every field is optional; gaps get neutral values."""
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

    def to_sample(self) -> WeatherSample:
        return WeatherSample(**self.model_dump())

    @classmethod
    def from_sample(cls, sample: Optional[WeatherSample]) -> Optional["WeatherSampleModel"]:
        if sample is None:
            return None
        return cls(**{name: getattr(sample, name) for name in cls.model_fields})


class WaypointModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    weather: Optional[WeatherSampleModel] = None
