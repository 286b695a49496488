"""
Routing error taxonomy.

``EndpointUnreachable`` and ``NoPathFound`` are expected, policy-driven
outcomes (the clearance constraint could not be met) and should be shown
to users as "no safe route found". ``GridUnavailable`` means the request
fell outside the data the grid holds.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

LatLon = Tuple[float, float]


class RoutingError(Exception):
    """Base class for all routing-core errors."""


@dataclass
class ClassificationFailure:
    """A land polygon that raised during point classification.

    Not an exception: failures are recorded per polygon and the batch
    continues.
    """
    polygon_index: int
    polygon_name: str
    error: str
    cells_affected: int = 1


class EndpointUnreachable(RoutingError):
    """No traversable cell near a requested waypoint."""

    def __init__(self, waypoint: LatLon, search_radius_deg: float, reason: str = ""):
        self.waypoint = waypoint
        self.search_radius_deg = search_radius_deg
        self.reason = reason
        msg = (
            f"No traversable cell within {search_radius_deg}° of "
            f"({waypoint[0]:.4f}, {waypoint[1]:.4f})"
        )
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class NoPathFound(RoutingError):
    """Search exhausted the grid without reaching the goal.

    ``best_partial`` is the explored cell closest to the goal, kept for
    diagnostics.
    """

    def __init__(
        self,
        start: LatLon,
        goal: LatLon,
        cells_explored: int,
        best_partial: Optional[LatLon] = None,
        clearance_km: float = 0.0,
    ):
        self.start = start
        self.goal = goal
        self.cells_explored = cells_explored
        self.best_partial = best_partial
        self.clearance_km = clearance_km
        super().__init__(
            f"No path from ({start[0]:.2f}, {start[1]:.2f}) to ({goal[0]:.2f}, {goal[1]:.2f}) "
            f"with {clearance_km:.1f} km clearance after exploring {cells_explored} cells"
        )


class SearchBudgetExceeded(NoPathFound):
    """Search stopped on the expansion budget or deadline."""


class GridUnavailable(RoutingError):
    """Classification or cost data missing for the requested region."""

    def __init__(self, region: str):
        self.region = region
        super().__init__(f"Grid data unavailable for {region}")
