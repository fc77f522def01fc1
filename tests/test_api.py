"""
API endpoint tests for FastAPI application.
"""
import math

import pytest
from fastapi.testclient import TestClient

from app import main
from app.main import app
from tests.bulletin_samples import SAMPLE_BULLETIN


@pytest.fixture
def client(monkeypatch):
    """Create a test client whose bulletin comes from the sample text."""
    main.bulletin_service.cache.clear()
    monkeypatch.setattr(main.bulletin_service, "fetcher", lambda url: SAMPLE_BULLETIN)
    yield TestClient(app)
    main.bulletin_service.cache.clear()


@pytest.fixture
def offline_client(monkeypatch):
    """Create a test client whose bulletin download always fails."""
    def fail(url):
        raise OSError("network down")

    main.bulletin_service.cache.clear()
    monkeypatch.setattr(main.bulletin_service, "fetcher", fail)
    yield TestClient(app)
    main.bulletin_service.cache.clear()


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_returns_ok(self, client):
        """Health endpoint should return healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "station" in data

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestTidesEndpoint:
    """Tests for the /api/v1/tides endpoint."""

    def test_tides_for_date(self, client):
        response = client.get("/api/v1/tides", params={"date": "2025-11-03"})
        assert response.status_code == 200
        data = response.json()
        assert data["date"] == "2025-11-03"
        assert data["source"] == "bulletin"
        assert data["tides"] == [
            {"type": "high", "time": "04:15", "level_cm": 170},
            {"type": "low", "time": "10:30", "level_cm": 45},
            {"type": "high", "time": "16:45", "level_cm": 180},
            {"type": "low", "time": "22:50", "level_cm": 60},
        ]

    def test_missing_day_uses_fallback(self, client):
        response = client.get("/api/v1/tides", params={"date": "2025-11-07"})
        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "fallback"
        assert len(data["tides"]) == 4

    def test_download_failure_uses_fallback(self, offline_client):
        response = offline_client.get("/api/v1/tides", params={"date": "2025-11-03"})
        assert response.status_code == 200
        assert response.json()["source"] == "fallback"

    def test_default_date(self, client):
        """Without a date, today's tides are returned."""
        response = client.get("/api/v1/tides")
        assert response.status_code == 200
        assert "tides" in response.json()

    def test_invalid_date_format(self, client):
        response = client.get("/api/v1/tides", params={"date": "03/11/2025"})
        assert response.status_code == 400


class TestWeekEndpoint:
    """Tests for the /api/v1/tides/week endpoint."""

    def test_week(self, client):
        response = client.get("/api/v1/tides/week", params={"date": "2025-11-03"})
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 7
        assert data[0]["source"] == "bulletin"
        assert data[6]["date"] == "2025-11-09"

    def test_days_parameter(self, client):
        response = client.get("/api/v1/tides/week", params={"date": "2025-11-03", "days": 3})
        assert response.status_code == 200
        assert [d["source"] for d in response.json()] == ["bulletin", "bulletin", "fallback"]

    def test_days_out_of_range(self, client):
        response = client.get("/api/v1/tides/week", params={"days": 8})
        assert response.status_code == 422


class TestCurrentEndpoint:
    """Tests for the /api/v1/tides/current endpoint."""

    def test_current_tide(self, client):
        response = client.get(
            "/api/v1/tides/current",
            params={"date": "2025-11-03", "time": "12:00"},
        )
        assert response.status_code == 200
        data = response.json()

        # 10:30 low (45cm) -> 16:45 high (180cm), 90 of 375 minutes elapsed
        expected = 45 + (180 - 45) * (1 - math.cos(90 / 375 * math.pi)) / 2
        assert data["level_cm"] == math.floor(expected + 0.5)
        assert data["is_rising"] is True
        assert data["trend"] == "rising"
        assert data["next_tide"] == {"type": "high", "time": "16:45", "level_cm": 180}
        assert data["time_until_next"] == {"hours": 4, "minutes": 45, "text": "4時間45分"}
        assert data["source"] == "bulletin"
        assert data["time"] == "12:00"

    def test_countdown_wraps_past_midnight(self, client):
        response = client.get(
            "/api/v1/tides/current",
            params={"date": "2025-11-03", "time": "23:30"},
        )
        data = response.json()
        assert data["next_tide"]["time"] == "04:15"
        assert data["time_until_next"]["text"] == "4時間45分"

    def test_single_event_day_not_computable(self, client):
        response = client.get(
            "/api/v1/tides/current",
            params={"date": "2025-11-04", "time": "12:00"},
        )
        assert response.status_code == 404

    def test_invalid_time_format(self, client):
        response = client.get(
            "/api/v1/tides/current",
            params={"date": "2025-11-03", "time": "noon"},
        )
        assert response.status_code == 400

    def test_defaults_to_now(self, client):
        response = client.get("/api/v1/tides/current")
        assert response.status_code in (200, 404)


class TestCurveEndpoint:
    """Tests for the /api/v1/tides/curve endpoint."""

    def test_curve_hourly(self, client):
        response = client.get(
            "/api/v1/tides/curve",
            params={"date": "2025-11-03", "interval": "60"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["interval_minutes"] == 60
        assert len(data["curve"]) == 24
        assert [h["time"] for h in data["highs"]] == ["04:15", "16:45"]
        assert [l["time"] for l in data["lows"]] == ["10:30", "22:50"]

    def test_curve_default_interval(self, client):
        response = client.get("/api/v1/tides/curve", params={"date": "2025-11-03"})
        assert response.status_code == 200
        assert len(response.json()["curve"]) == 48

    def test_curve_levels_within_day_range(self, client):
        response = client.get("/api/v1/tides/curve", params={"date": "2025-11-03", "interval": "15"})
        levels = [p["level_cm"] for p in response.json()["curve"]]
        assert min(levels) >= 45
        assert max(levels) <= 180

    def test_invalid_interval(self, client):
        response = client.get("/api/v1/tides/curve", params={"date": "2025-11-03", "interval": "7"})
        assert response.status_code == 422

    def test_single_event_day_not_computable(self, client):
        response = client.get("/api/v1/tides/curve", params={"date": "2025-11-04"})
        assert response.status_code == 404
