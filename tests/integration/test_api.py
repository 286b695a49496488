"""
Integration tests for SEAPLAN API.

Exercises the HTTP layer over small synthetic grids.
Fixtures (client, grid_state, island_grid, lagoon_grid) provided by
tests/conftest.py.
"""

import pytest

from seaplan import __version__
from seaplan.config import settings as core_settings

WEST = {"lat": 11.0, "lon": 68.5}
EAST = {"lat": 11.0, "lon": 73.5}


@pytest.fixture
def loaded(grid_state, island_grid):
    grid_state.set_grid(island_grid)
    return grid_state


# ============================================================================
# System Endpoint Tests
# ============================================================================

def test_root_endpoint(client):
    """Test API root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "SEAPLAN API"
    assert data["version"] == __version__
    assert data["status"] == "operational"


def test_health_without_grid(client):
    """Service is up but degraded until a grid is loaded."""
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["components"]["grid"] == "not_loaded"
    assert data["grid"] == {"loaded": False}
    assert "timestamp" in data


def test_health_with_grid(client, loaded):
    data = client.get("/api/health").json()
    assert data["status"] == "healthy"
    assert data["grid"]["loaded"] is True
    assert data["grid"]["cost_version"] == 0


def test_metrics_endpoint(client, loaded):
    client.post("/api/route/plan", json={"waypoints": [WEST, EAST], "clearance": "moderate"})
    data = client.get("/api/metrics").json()
    assert data["counters"]["routes_planned"] == 1
    assert "plan_route" in data["timings"]


# ============================================================================
# Grid Endpoint Tests
# ============================================================================

def test_grid_status(client, loaded):
    data = client.get("/api/grid/status").json()
    assert data["rows"] == 61
    assert data["cols"] == 61
    assert data["land_cells"] == 441
    assert data["failed_polygons"] == []


def test_weather_refresh(client, loaded):
    payload = {
        "samples": [
            {"location": {"lat": 9.0, "lon": 69.0}, "weather": {"wind_speed_kts": 22.0, "wave_height_m": 3.0}},
            {"location": {"lat": 40.0, "lon": 10.0}, "weather": {"wind_speed_kts": 22.0}},
        ],
    }
    response = client.post("/api/grid/weather", json=payload)
    assert response.status_code == 200
    data = response.json()
    assert data["cost_version"] == 1
    assert data["samples_received"] == 2
    assert data["cells_with_weather"] == 1
    assert loaded.grid.weather(9.0, 69.0).wind_speed_kts == 22.0


def test_weather_refresh_without_grid(client):
    payload = {"samples": [{"location": {"lat": 9.0, "lon": 69.0}, "weather": {}}]}
    response = client.post("/api/grid/weather", json=payload)
    assert response.status_code == 503
    assert response.json()["error"] == "grid unavailable"


def test_weather_refresh_requires_samples(client, loaded):
    response = client.post("/api/grid/weather", json={"samples": []})
    assert response.status_code == 422


# ============================================================================
# Route Planning Tests
# ============================================================================

def test_plan_route(client, loaded):
    """Plan around the island with the default (auto) strategy."""
    response = client.post("/api/route/plan", json={"waypoints": [WEST, EAST], "clearance": "moderate"})
    assert response.status_code == 200
    data = response.json()

    assert data["strategy"]["mode"] == "OPTIMAL"
    assert data["strategy"]["deviation"] == "NONE"
    assert data["clearance_km"] == 10.0
    assert data["waypoints"][0]["lat"] == 11.0
    assert data["waypoints"][0]["lon"] == 68.5
    assert data["waypoints"][-1]["lon"] == 73.5
    assert data["metrics"]["min_clearance_km"] >= 10.0
    assert data["metrics"]["distance_km"] > data["metrics"]["direct_distance_km"]
    assert data["cells_explored"] > 0
    assert data["change_event"]["from"] == "INITIAL"
    assert data["change_event"]["to"] == "OPTIMAL"


def test_plan_route_history(client, loaded):
    """Repeating a plan with the same strategy emits no change event."""
    body = {"waypoints": [WEST, EAST], "clearance": "moderate"}
    client.post("/api/route/plan", json=body)
    data = client.post("/api/route/plan", json=body).json()
    assert data["change_event"] is None

    data = client.post("/api/route/plan", json={**body, "strategy": "safe"}).json()
    assert data["change_event"]["from"] == "OPTIMAL"
    assert data["change_event"]["to"] == "SAFE"
    assert data["strategy"]["reason"] == "Requested safe routing"


def test_change_event_matches_core_event(client, loaded):
    """The JSON event uses the same keys as RouteChangeEvent.to_dict()."""
    data = client.post("/api/route/plan", json={"waypoints": [WEST, EAST]}).json()
    event = loaded.history.events([(WEST["lat"], WEST["lon"]), (EAST["lat"], EAST["lon"])])[0]
    assert data["change_event"] == event.to_dict()
    assert set(data["change_event"]) == {"from", "to", "reason", "timestamp"}


def test_plan_route_simplified(client, loaded):
    body = {"waypoints": [WEST, EAST], "clearance": "moderate"}
    full = client.post("/api/route/plan", json=body).json()
    short = client.post("/api/route/plan", json={**body, "simplify": True}).json()

    assert len(short["waypoints"]) < len(full["waypoints"])
    assert short["waypoints"][0] == full["waypoints"][0]
    assert short["waypoints"][-1] == full["waypoints"][-1]
    assert short["metrics"]["min_clearance_km"] >= 10.0
    assert short["metrics"]["distance_km"] <= full["metrics"]["distance_km"]


def test_plan_route_numeric_clearance(client, loaded):
    response = client.post("/api/route/plan", json={"waypoints": [WEST, EAST], "clearance": 12.5})
    assert response.status_code == 200
    assert response.json()["clearance_km"] == 12.5


def test_plan_route_without_grid(client):
    response = client.post("/api/route/plan", json={"waypoints": [WEST, EAST]})
    assert response.status_code == 503
    assert response.json()["error"] == "grid unavailable"


def test_plan_route_outside_grid(client, loaded):
    response = client.post("/api/route/plan", json={"waypoints": [WEST, {"lat": 40.0, "lon": 10.0}]})
    assert response.status_code == 503


def test_plan_route_endpoint_on_land(client, loaded):
    response = client.post(
        "/api/route/plan",
        json={"waypoints": [{"lat": 11.0, "lon": 71.0}, EAST], "clearance": "moderate"},
    )
    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "no safe route found"
    assert data["reason"] == "endpoint_unreachable"
    assert data["waypoint"] == {"lat": 11.0, "lon": 71.0}


def test_plan_route_no_path(client, grid_state, lagoon_grid):
    grid_state.set_grid(lagoon_grid)
    response = client.post(
        "/api/route/plan",
        json={"waypoints": [{"lat": 9.0, "lon": 69.0}, {"lat": 11.0, "lon": 71.0}], "clearance": 0.0},
    )
    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "no safe route found"
    assert data["reason"] == "no_path"
    assert data["cells_explored"] > 0
    assert data["best_partial"] is not None


@pytest.mark.parametrize("body", [
    {"waypoints": [WEST]},
    {"waypoints": [WEST, EAST], "strategy": "fastest"},
    {"waypoints": [WEST, EAST], "clearance": -5},
    {"waypoints": [WEST, EAST], "clearance": "loose"},
    {"waypoints": [WEST, {"lat": 95.0, "lon": 0.0}]},
])
def test_plan_route_validation(client, loaded, body):
    response = client.post("/api/route/plan", json=body)
    assert response.status_code == 422


# ============================================================================
# Strategy Comparison Tests
# ============================================================================

def test_compare_routes(client, loaded):
    response = client.post("/api/route/compare", json={"waypoints": [WEST, EAST], "clearance": "moderate"})
    assert response.status_code == 200
    data = response.json()

    assert set(data["comparison"]) == {"OPTIMAL", "FUEL", "SAFE"}
    for name, entry in data["comparison"].items():
        assert entry["error"] is None
        assert entry["route"]["strategy"]["mode"] == name
        assert entry["route"]["change_event"] is None
    assert data["comparison"]["OPTIMAL"]["route"]["clearance_km"] == pytest.approx(10.0)
    assert data["comparison"]["SAFE"]["route"]["clearance_km"] == pytest.approx(11.2)
    assert data["shortest"] in data["comparison"]
    # Comparisons are not recorded as strategy changes
    assert len(loaded.history) == 0


def test_compare_routes_reports_failed_strategy(client, loaded, monkeypatch):
    """Port 21.8 km off the island: SAFE needs 22.4 km and cannot snap."""
    monkeypatch.setattr(core_settings, "snap_radius_deg", 0.05)
    response = client.post(
        "/api/route/compare",
        json={"waypoints": [{"lat": 11.0, "lon": 69.8}, EAST], "clearance": "strict"},
    )
    assert response.status_code == 200
    data = response.json()["comparison"]

    assert data["OPTIMAL"]["route"] is not None
    assert data["FUEL"]["route"] is not None
    assert data["SAFE"]["route"] is None
    assert "clearance" in data["SAFE"]["error"]


def test_compare_routes_without_grid(client):
    response = client.post("/api/route/compare", json={"waypoints": [WEST, EAST]})
    assert response.status_code == 503


def test_compare_routes_validation(client, loaded):
    response = client.post("/api/route/compare", json={"waypoints": [WEST]})
    assert response.status_code == 422


# ============================================================================
# Hazard Check Tests
# ============================================================================

def test_check_hazards(client):
    payload = {
        "waypoints": [
            {"lat": 15.0, "lon": 70.0},
            {"lat": 12.0, "lon": 65.0, "weather": {"wind_speed_kts": 40.0}},
            {"lat": 5.0, "lon": 60.0},
        ],
        "hazard_zones": [
            {"name": "Cyclone Tej", "location": {"lat": 15.2, "lon": 70.0}, "radius_km": 100.0},
        ],
    }
    response = client.post("/api/route/check-hazards", json=payload)
    assert response.status_code == 200
    data = response.json()

    assert data["waypoints_checked"] == 3
    assert data["requires_reroute"] is True
    assert data["recommendation"] == "CRITICAL: Immediate route recalculation recommended"
    names = [(i["waypoint_index"], i["hazard_name"]) for i in data["intersections"]]
    assert names == [(0, "Cyclone Tej"), (1, "weather")]
    assert data["intersections"][0]["severity"] == "CRITICAL"
    assert data["intersections"][1]["distance_to_center_km"] is None


def test_check_hazards_clear(client):
    payload = {"waypoints": [{"lat": 5.0, "lon": 60.0}], "hazard_zones": []}
    data = client.post("/api/route/check-hazards", json=payload).json()
    assert data["intersections"] == []
    assert data["recommendation"] == "Route conditions are safe"


def test_check_hazards_rejects_bad_radius(client):
    payload = {
        "waypoints": [{"lat": 5.0, "lon": 60.0}],
        "hazard_zones": [{"name": "x", "location": {"lat": 5.0, "lon": 60.0}, "radius_km": 0}],
    }
    assert client.post("/api/route/check-hazards", json=payload).status_code == 422
