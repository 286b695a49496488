"""
Unit tests for the hazard monitor.

Tests zone intersection and severity escalation, local weather hazards,
report ordering and cyclone detection.
"""

import pytest

from seaplan.optimization.base_planner import Waypoint, haversine_km
from seaplan.optimization.hazard_monitor import (
    HazardLevel,
    HazardMonitor,
    HazardThresholds,
    HazardZone,
    Severity,
    cyclone_warnings,
    detect_cyclone,
    zone_severity,
)
from seaplan.optimization.weather_cost import WeatherSample

KM_PER_DEG_LAT = 111.19492664455873


def north_of(lat, lon, km):
    return lat + km / KM_PER_DEG_LAT, lon


CALM = WeatherSample(wind_speed_kts=10.0, wave_height_m=1.0, visibility_m=10_000.0)


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------

class TestZoneSeverity:
    """Severity from the zone level and the distance to its centre."""

    @pytest.mark.parametrize("distance,expected", [
        (10.0, Severity.CRITICAL),
        (24.9, Severity.CRITICAL),
        (40.0, Severity.CRITICAL),   # HIGH escalated
        (50.0, Severity.HIGH),       # not strictly inside half the radius
        (99.0, Severity.HIGH),
    ])
    def test_active_zone(self, distance, expected):
        zone = HazardZone(name="Cyclone", lat=15.0, lon=70.0, radius_km=100.0)
        assert zone_severity(zone, distance) is expected

    @pytest.mark.parametrize("distance,expected", [
        (20.0, Severity.CRITICAL),
        (25.0, Severity.HIGH),
        (49.9, Severity.HIGH),
        (50.0, Severity.MODERATE),
        (100.0, Severity.MODERATE),
    ])
    def test_advisory_zone(self, distance, expected):
        zone = HazardZone(name="Low", lat=15.0, lon=70.0, radius_km=100.0, level=HazardLevel.ADVISORY)
        assert zone_severity(zone, distance) is expected

    def test_escalate_saturates(self):
        assert Severity.MODERATE.escalate() is Severity.HIGH
        assert Severity.CRITICAL.escalate() is Severity.CRITICAL


class TestHazardZone:
    """Validation of hazard zones."""

    @pytest.mark.parametrize("radius", [0.0, -10.0, float("nan")])
    def test_radius_must_be_positive(self, radius):
        with pytest.raises(ValueError):
            HazardZone(name="bad", lat=0.0, lon=0.0, radius_km=radius)

    def test_non_finite_centre(self):
        with pytest.raises(ValueError):
            HazardZone(name="bad", lat=float("inf"), lon=0.0, radius_km=10.0)

    def test_string_level(self):
        zone = HazardZone(name="Low", lat=0.0, lon=0.0, radius_km=10.0, level="advisory")
        assert zone.level is HazardLevel.ADVISORY


# ---------------------------------------------------------------------------
# Route checks
# ---------------------------------------------------------------------------

class TestCheck:
    """Tests for HazardMonitor.check()."""

    def test_waypoint_50km_from_centre(self):
        zone = HazardZone(name="Cyclone Biparjoy", lat=15.0, lon=70.0, radius_km=100.0)
        wp = north_of(15.0, 70.0, 50.0)
        report = HazardMonitor().check([wp], [zone])

        assert len(report.intersections) == 1
        hit = report.intersections[0]
        assert hit.waypoint_index == 0
        assert hit.hazard_name == "Cyclone Biparjoy"
        assert hit.distance_to_center_km == pytest.approx(50.0, abs=0.01)

    def test_close_to_centre_requires_reroute(self):
        zone = HazardZone(name="Cyclone", lat=15.0, lon=70.0, radius_km=100.0, level=HazardLevel.ADVISORY)
        report = HazardMonitor().check([north_of(15.0, 70.0, 20.0)], [zone])
        assert report.intersections[0].severity is Severity.CRITICAL
        assert report.requires_reroute
        assert report.recommendation == "CRITICAL: Immediate route recalculation recommended"

    def test_far_zone_ignored(self):
        zone = HazardZone(name="Cyclone", lat=15.0, lon=70.0, radius_km=100.0)
        report = HazardMonitor().check([north_of(15.0, 70.0, 500.0)], [zone])
        assert report.intersections == ()
        assert not report.requires_reroute
        assert report.recommendation == "Route conditions are safe"
        assert report.worst_severity is None

    def test_non_critical_recommendation(self):
        zone = HazardZone(name="Low", lat=15.0, lon=70.0, radius_km=100.0, level=HazardLevel.ADVISORY)
        report = HazardMonitor().check([north_of(15.0, 70.0, 80.0)], [zone])
        assert report.worst_severity is Severity.MODERATE
        assert not report.requires_reroute
        assert report.recommendation == "Monitor conditions closely, consider alternative route"

    def test_ordering(self):
        """Waypoint order first, then zones as given, then weather."""
        a = HazardZone(name="A", lat=15.0, lon=70.0, radius_km=200.0)
        b = HazardZone(name="B", lat=15.5, lon=70.0, radius_km=200.0)
        gale = WeatherSample(wind_speed_kts=28.0)
        waypoints = [(15.2, 70.0, gale), (15.3, 70.1)]

        report = HazardMonitor().check(waypoints, [a, b])
        order = [(i.waypoint_index, i.hazard_name) for i in report.intersections]
        assert order == [(0, "A"), (0, "B"), (0, "weather"), (1, "A"), (1, "B")]

    def test_accepts_waypoint_objects(self):
        zone = HazardZone(name="A", lat=15.0, lon=70.0, radius_km=50.0)
        report = HazardMonitor().check([Waypoint(lat=15.0, lon=70.0, weather=CALM)], [zone])
        assert len(report.intersections) == 1
        assert report.intersections[0].severity is Severity.CRITICAL
        assert report.waypoints_checked == 1

    def test_deterministic(self):
        zone = HazardZone(name="A", lat=15.0, lon=70.0, radius_km=150.0)
        waypoints = [(15.0 + i * 0.2, 70.0) for i in range(10)]
        monitor = HazardMonitor()
        assert monitor.check(waypoints, [zone]) == monitor.check(waypoints, [zone])

    def test_to_dict(self):
        zone = HazardZone(name="A", lat=15.0, lon=70.0, radius_km=100.0)
        data = HazardMonitor().check([north_of(15.0, 70.0, 60.0)], [zone]).to_dict()
        hit = data["intersections"][0]
        assert hit["severity"] == "HIGH"
        assert hit["location"]["lon"] == 70.0
        assert hit["distance_to_center_km"] == pytest.approx(60.0, abs=0.1)
        assert data["waypoints_checked"] == 1

    def test_haversine_helper_agrees(self):
        lat, lon = north_of(15.0, 70.0, 75.0)
        assert haversine_km(15.0, 70.0, lat, lon) == pytest.approx(75.0, abs=0.01)


class TestWeatherHazards:
    """Local weather at waypoints."""

    @pytest.mark.parametrize("sample,expected", [
        (WeatherSample(wind_speed_kts=36.0), Severity.CRITICAL),
        (WeatherSample(wave_height_m=6.5), Severity.CRITICAL),
        (WeatherSample(visibility_m=1500.0), Severity.CRITICAL),
        (WeatherSample(wind_speed_kts=26.0), Severity.HIGH),
        (WeatherSample(visibility_m=4000.0), Severity.HIGH),
        (WeatherSample(wave_height_m=3.0), Severity.MODERATE),
        (WeatherSample(wind_speed_kts=16.0), Severity.MODERATE),
        (CALM, None),
        (WeatherSample(), None),
    ])
    def test_weather_severity(self, sample, expected):
        assert HazardMonitor().weather_severity(sample) is expected

    def test_custom_thresholds(self):
        monitor = HazardMonitor(HazardThresholds(wind_moderate_kts=8.0))
        assert monitor.weather_severity(CALM) is Severity.MODERATE

    def test_weather_hazard_message(self):
        report = HazardMonitor().check([(12.0, 65.0, WeatherSample(wind_speed_kts=40.0))])
        hit = report.intersections[0]
        assert hit.hazard_name == "weather"
        assert hit.distance_to_center_km is None
        assert "wind 40.0 kts" in hit.message
        assert report.requires_reroute

    def test_points_without_weather_skip_weather_check(self):
        report = HazardMonitor().check([(12.0, 65.0)])
        assert report.intersections == ()


# ---------------------------------------------------------------------------
# Cyclones
# ---------------------------------------------------------------------------

class TestDetectCyclone:
    """Tests for detect_cyclone()."""

    def test_severe_cyclonic_storm(self):
        zone = detect_cyclone(16.0, 68.0, WeatherSample(wind_speed_kts=70.0, wave_height_m=9.0))
        assert zone.category == "Severe Cyclonic Storm"
        assert zone.level is HazardLevel.ACTIVE
        assert zone.radius_km == 300.0
        assert zone.conditions.wind_speed_kts == 70.0

    def test_cyclonic_storm_from_low_pressure(self):
        zone = detect_cyclone(
            16.0, 68.0, WeatherSample(wind_speed_kts=52.0, wave_height_m=1.0), pressure_hpa=985.0,
        )
        assert zone.category == "Cyclonic Storm"
        assert zone.radius_km == 250.0

    def test_tropical_storm_is_advisory(self):
        zone = detect_cyclone(16.0, 68.0, WeatherSample(wind_speed_kts=40.0, wave_height_m=4.5))
        assert zone.category == "Deep Depression / Tropical Storm"
        assert zone.level is HazardLevel.ADVISORY
        assert zone.radius_km == 200.0

    def test_gusts_alone(self):
        zone = detect_cyclone(16.0, 68.0, WeatherSample(wind_speed_kts=20.0), gust_kts=70.0)
        assert zone is not None
        assert zone.level is HazardLevel.ADVISORY

    def test_ordinary_weather(self):
        assert detect_cyclone(16.0, 68.0, WeatherSample(wind_speed_kts=30.0, wave_height_m=3.0)) is None
        assert detect_cyclone(16.0, 68.0, WeatherSample()) is None

    def test_default_name(self):
        zone = detect_cyclone(16.04, 68.0, WeatherSample(wind_speed_kts=70.0, wave_height_m=9.0))
        assert zone.name == "System 16.0N 68.0E"

    def test_detected_zone_feeds_check(self):
        zone = detect_cyclone(16.0, 68.0, WeatherSample(wind_speed_kts=70.0, wave_height_m=9.0), name="Tej")
        report = HazardMonitor().check([(16.5, 68.0)], [zone])
        assert report.intersections[0].hazard_name == "Tej"
        assert report.intersections[0].severity is Severity.CRITICAL


def test_cyclone_warnings():
    warnings = cyclone_warnings(70.0, 9.0, 960.0)
    assert warnings[0] == "SEVERE CYCLONIC STORM - EXTREME DANGER"
    assert "PHENOMENAL SEAS: 9.0m waves" in warnings
    assert warnings[-1] == "VERY LOW PRESSURE - Intensification likely"
    assert cyclone_warnings(20.0, 1.0) == []
