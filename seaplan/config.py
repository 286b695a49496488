"""
SEAPLAN Configuration Module.

Centralized configuration management using environment variables.
Supports .env files for local development.

Routing thresholds are grouped in ``RoutingThresholds`` and passed
explicitly into the cost model and strategy selector; the algorithms never
read ``settings`` themselves.

Usage:
    from seaplan.config import settings

    print(settings.grid_resolution_deg)
    thresholds = settings.routing_thresholds()
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
import logging

# Load .env file if present
try:
    from dotenv import load_dotenv
    env_path = Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)
except ImportError:
    pass  # python-dotenv not installed, use system env vars


def get_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def get_float(key: str, default: float) -> float:
    """Get float from environment variable."""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_int(key: str, default: int) -> int:
    """Get int from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


@dataclass(frozen=True)
class RoutingThresholds:
    """
    Weather limits used by the cost model and the strategy selector.

    The critical factors decide when SAFE/HIGH becomes mandatory:
    wind or waves above ``factor x limit``, visibility below
    ``factor x minimum`` or rainfall above ``max_safe_rainfall_mm_hr``.
    """
    max_safe_wind_kts: float = 25.0
    min_safe_visibility_km: float = 2.0
    max_safe_rainfall_mm_hr: float = 50.0
    max_safe_wave_height_m: float = 3.5
    optimal_temp_c: float = 25.0

    critical_wind_factor: float = 1.2
    critical_wave_factor: float = 1.2
    critical_visibility_factor: float = 0.5

    # Strategy thresholds on aggregated scores
    min_safety_score: float = 60.0
    min_fuel_efficiency: float = 70.0


@dataclass
class Settings:
    """Application settings loaded from environment."""

    # Grid
    grid_resolution_deg: float = field(default_factory=lambda: get_float("GRID_RESOLUTION_DEG", 0.2))
    snap_radius_deg: float = field(default_factory=lambda: get_float("SNAP_RADIUS_DEG", 0.5))
    classification_workers: int = field(default_factory=lambda: get_int("CLASSIFICATION_WORKERS", 4))

    # Route planning
    default_clearance: str = field(default_factory=lambda: os.getenv("DEFAULT_CLEARANCE", "strict"))
    max_expansions: int = field(default_factory=lambda: get_int("MAX_EXPANSIONS", 200_000))
    search_deadline_s: float = field(default_factory=lambda: get_float("SEARCH_DEADLINE_S", 0.0))

    # Voyage estimation
    base_speed_kts: float = field(default_factory=lambda: get_float("BASE_SPEED_KTS", 22.0))
    base_fuel_rate_tph: float = field(default_factory=lambda: get_float("BASE_FUEL_RATE_TPH", 3.2))
    fuel_price_per_ton: float = field(default_factory=lambda: get_float("FUEL_PRICE_PER_TON", 49_800.0))

    # Weather thresholds
    max_safe_wind_kts: float = field(default_factory=lambda: get_float("MAX_SAFE_WIND_KTS", 25.0))
    min_safe_visibility_km: float = field(default_factory=lambda: get_float("MIN_SAFE_VISIBILITY_KM", 2.0))
    max_safe_rainfall_mm_hr: float = field(default_factory=lambda: get_float("MAX_SAFE_RAINFALL_MM_HR", 50.0))
    max_safe_wave_height_m: float = field(default_factory=lambda: get_float("MAX_SAFE_WAVE_HEIGHT_M", 3.5))
    optimal_temp_c: float = field(default_factory=lambda: get_float("OPTIMAL_TEMP_C", 25.0))
    critical_factor: float = field(default_factory=lambda: get_float("CRITICAL_FACTOR", 1.2))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    )
    metrics_logging: bool = field(default_factory=lambda: get_bool("METRICS_LOGGING", False))

    def __post_init__(self):
        """Validate settings after initialization."""
        if not 0.01 <= self.grid_resolution_deg <= 5.0:
            logging.warning(
                f"Grid resolution {self.grid_resolution_deg} outside "
                f"supported range [0.01, 5.0], using 0.2"
            )
            self.grid_resolution_deg = 0.2

        if self.classification_workers < 1:
            logging.warning(
                f"classification_workers={self.classification_workers} is invalid, using 1"
            )
            self.classification_workers = 1

        if self.default_clearance not in ("moderate", "strict", "very-strict"):
            logging.warning(
                f"Unknown DEFAULT_CLEARANCE '{self.default_clearance}', using 'strict'"
            )
            self.default_clearance = "strict"

    def routing_thresholds(self) -> RoutingThresholds:
        """Build the explicit threshold struct handed to the routing core."""
        return RoutingThresholds(
            max_safe_wind_kts=self.max_safe_wind_kts,
            min_safe_visibility_km=self.min_safe_visibility_km,
            max_safe_rainfall_mm_hr=self.max_safe_rainfall_mm_hr,
            max_safe_wave_height_m=self.max_safe_wave_height_m,
            optimal_temp_c=self.optimal_temp_c,
            critical_wind_factor=self.critical_factor,
            critical_wave_factor=self.critical_factor,
        )

    def configure_logging(self):
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=self.log_format)


# Singleton instance
settings = Settings()


def get_settings() -> Settings:
    """Get the settings instance (useful for dependency injection)."""
    return settings
