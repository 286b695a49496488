"""
Grid API router.

Exposes the grid status and the weather refresh that an external
scheduler calls on its own cadence.
"""

import logging

from fastapi import APIRouter

from api.schemas import RefreshWeatherRequest
from api.state import get_grid_state

router = APIRouter(prefix="/api/grid", tags=["grid"])

logger = logging.getLogger(__name__)


@router.get("/status")
def grid_status():
    """Classification summary and current cost version."""
    return get_grid_state().status()


@router.post("/weather")
def refresh_weather(request: RefreshWeatherRequest):
    """
    Apply weather samples to the grid cost layer.

    Classification is never touched; the response reports the new cost
    version.
    """
    state = get_grid_state()
    samples = [
        ((s.location.lat, s.location.lon), s.weather.to_sample())
        for s in request.samples
    ]
    grid = state.refresh(samples, radius_deg=request.radius_deg)
    return {
        "cost_version": grid.version,
        "samples_received": len(samples),
        "cells_with_weather": len(grid.cost_layer.weather),
    }
