"""
Thread-safe state management for the SEAPLAN API.

The navigable grid is shared by every request. Planning calls take a
snapshot reference under the lock and then run without holding it; a
weather refresh builds a new snapshot outside the lock and only swaps the
reference under it, so a search never sees classification or cost change
mid-flight and status reads never wait for a refresh to finish.
"""
import threading
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone

from seaplan.optimization.base_planner import RouteHistory
from seaplan.optimization.grid_builder import NavigableGrid

logger = logging.getLogger(__name__)


@dataclass
class GridState:
    """
    Thread-safe holder for the current grid snapshot and the route
    strategy history.
    """
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    # Serialises writers; held for the whole build of a refreshed snapshot
    _refresh_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _grid: Optional[NavigableGrid] = None
    _history: RouteHistory = field(default_factory=RouteHistory)
    _loaded_at: Optional[datetime] = None

    @property
    def grid(self) -> Optional[NavigableGrid]:
        """Current snapshot (thread-safe read)."""
        with self._lock:
            return self._grid

    @property
    def history(self) -> RouteHistory:
        with self._lock:
            return self._history

    @property
    def loaded_at(self) -> Optional[datetime]:
        with self._lock:
            return self._loaded_at

    def set_grid(self, grid: Optional[NavigableGrid]) -> None:
        """Replace the snapshot atomically."""
        with self._refresh_lock, self._lock:
            self._grid = grid
            self._loaded_at = datetime.now(timezone.utc) if grid is not None else None
        if grid is not None:
            logger.info(
                f"Grid snapshot set: {grid.spec.rows}x{grid.spec.cols} cells, "
                f"cost version {grid.version}"
            )

    def refresh(self, samples, radius_deg: float = 0.0) -> NavigableGrid:
        """
        Apply weather samples to the current grid and swap in the result.

        Refreshes are serialised so two concurrent refreshes cannot both
        build on the same base version. The new snapshot is built without
        holding the read lock; readers keep getting the previous snapshot
        until the swap.
        """
        from seaplan import refresh_cost

        with self._refresh_lock:
            with self._lock:
                base = self._grid
            grid = refresh_cost(base, samples, radius_deg=radius_deg)
            with self._lock:
                self._grid = grid
        return grid

    def record_route(self, route) -> None:
        with self._lock:
            self._history.record(route)

    def last_strategy(self, ports) -> Optional[str]:
        with self._lock:
            return self._history.last_strategy(ports)

    def reset(self) -> None:
        with self._refresh_lock, self._lock:
            self._grid = None
            self._history = RouteHistory()
            self._loaded_at = None

    def status(self) -> Dict[str, Any]:
        with self._lock:
            grid = self._grid
            if grid is None:
                return {"loaded": False}
            report = grid.report
            return {
                "loaded": True,
                "rows": grid.spec.rows,
                "cols": grid.spec.cols,
                "resolution_deg": grid.spec.resolution_deg,
                "cost_version": grid.version,
                "land_cells": report.land_cells,
                "coastal_cells": report.coastal_cells,
                "open_water_cells": report.open_water_cells,
                "obstacle_cells": report.obstacle_cells,
                "failed_polygons": report.failed_polygons,
                "loaded_at": self._loaded_at.isoformat() if self._loaded_at else None,
            }


class ApplicationState:
    """
    Singleton application state manager.

    Use get_app_state() to access the singleton instance.
    """

    _instance: Optional['ApplicationState'] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            with cls._lock:
                # Double-check locking
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize application state (only once)."""
        if self._initialized:
            return

        self._initialized = True
        self._grid_state = GridState()
        self._startup_time = datetime.now(timezone.utc)

        logger.info("Application state initialized")

    @property
    def grid(self) -> GridState:
        return self._grid_state

    @property
    def uptime_seconds(self) -> float:
        """Get application uptime in seconds."""
        return (datetime.now(timezone.utc) - self._startup_time).total_seconds()

    def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on all components.

        Returns:
            Dict with health status of each component
        """
        return {
            'grid': 'healthy' if self._grid_state.grid is not None else 'not_loaded',
            'uptime_seconds': self.uptime_seconds,
        }


def get_app_state() -> ApplicationState:
    """
    Get the application state singleton.

    Returns:
        ApplicationState: The singleton application state instance
    """
    return ApplicationState()


def get_grid_state() -> GridState:
    """Get the grid state manager."""
    return get_app_state().grid
