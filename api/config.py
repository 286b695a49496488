"""
Configuration management for the SEAPLAN API.
Loads environment variables and provides typed configuration.

Routing thresholds and search limits live in ``seaplan.config``; this
module only covers the HTTP service and the grid it loads at startup.
"""
from typing import List, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ========================================================================
    # API Configuration
    # ========================================================================
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ========================================================================
    # CORS Configuration
    # ========================================================================
    cors_origins: str = "http://localhost:3000,http://localhost:3001"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ========================================================================
    # Grid Configuration
    # ========================================================================
    # GeoJSON file with land polygons; no grid is loaded when unset
    land_polygons_file: Optional[str] = None
    obstacles_file: Optional[str] = None
    grid_lat_min: float = 0.0
    grid_lat_max: float = 30.0
    grid_lon_min: float = 60.0
    grid_lon_max: float = 100.0

    # ========================================================================
    # Pydantic Settings Configuration
    # ========================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()


# Convenience exports
settings = get_settings()
