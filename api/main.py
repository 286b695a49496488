"""
SEAPLAN API - weather-aware maritime route planning.

FastAPI adapter over the ``seaplan`` routing core:
- Route planning (auto / optimal / fuel / safe strategies)
- Hazard checks for planned routes
- Grid status and weather refresh

Routing errors map to HTTP responses here:
EndpointUnreachable / NoPathFound -> 422 "no safe route found",
GridUnavailable -> 503.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from seaplan import __version__, classify_grid
from seaplan.config import settings as core_settings
from seaplan.data.land_mask import load_polygons
from seaplan.errors import EndpointUnreachable, GridUnavailable, NoPathFound, SearchBudgetExceeded
from seaplan.optimization.grid_builder import GridSpec
from api.config import settings
from api.routers import grid, route, system
from api.state import get_grid_state

logger = logging.getLogger(__name__)


def load_configured_grid() -> None:
    """Build the grid from the configured land polygon file, if any."""
    if not settings.land_polygons_file:
        logger.warning("LAND_POLYGONS_FILE not set; starting without a grid")
        return

    polygons = load_polygons(Path(settings.land_polygons_file))
    obstacles = load_polygons(Path(settings.obstacles_file)) if settings.obstacles_file else []
    spec = GridSpec(
        lat_min=settings.grid_lat_min,
        lat_max=settings.grid_lat_max,
        lon_min=settings.grid_lon_min,
        lon_max=settings.grid_lon_max,
        resolution_deg=core_settings.grid_resolution_deg,
    )
    get_grid_state().set_grid(classify_grid(polygons, spec, obstacles))


@asynccontextmanager
async def lifespan(application: FastAPI):
    core_settings.configure_logging()
    load_configured_grid()
    yield


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Application factory for SEAPLAN API.

    Returns:
        FastAPI: Configured application instance
    """
    application = FastAPI(
        title="SEAPLAN API",
        description="""
## Maritime Route Planning API

Weather-aware routing over a land/water grid.

### Features
- A* route planning with hard land clearance (10 / 20 / 30 km)
- Automatic strategy selection from live weather
- Cyclone and weather hazard checks for planned routes
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    application.include_router(system.router)
    application.include_router(route.router)
    application.include_router(grid.router)

    @application.exception_handler(EndpointUnreachable)
    async def endpoint_unreachable_handler(request: Request, exc: EndpointUnreachable):
        logger.info(f"No safe route: {exc}")
        return JSONResponse(
            status_code=422,
            content={
                "error": "no safe route found",
                "reason": "endpoint_unreachable",
                "detail": str(exc),
                "waypoint": {"lat": exc.waypoint[0], "lon": exc.waypoint[1]},
            },
        )

    @application.exception_handler(NoPathFound)
    async def no_path_handler(request: Request, exc: NoPathFound):
        logger.info(f"No safe route: {exc}")
        reason = "search_budget_exceeded" if isinstance(exc, SearchBudgetExceeded) else "no_path"
        return JSONResponse(
            status_code=422,
            content={
                "error": "no safe route found",
                "reason": reason,
                "detail": str(exc),
                "cells_explored": exc.cells_explored,
                "best_partial": (
                    {"lat": exc.best_partial[0], "lon": exc.best_partial[1]}
                    if exc.best_partial else None
                ),
            },
        )

    @application.exception_handler(GridUnavailable)
    async def grid_unavailable_handler(request: Request, exc: GridUnavailable):
        logger.warning(f"Grid unavailable: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": "grid unavailable", "detail": str(exc)},
        )

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})

    return application


def jsonable_errors(exc: RequestValidationError):
    """Validation errors with non-serialisable context (exceptions) stringified."""
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
