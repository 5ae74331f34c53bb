"""
Integration tests for API endpoints.

Tests the full HTTP request/response cycle with mocked external dependencies
and an in-memory history.
"""
import csv
import io
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from bloomwatch.main import app
from bloomwatch.api.dependencies import (
    get_analysis_service,
    get_history_store,
    get_overlay_service,
)
from bloomwatch.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    RemoteServiceError,
)
from bloomwatch.domain.models import PointOfInterest, TimeWindow
from bloomwatch.services.application.analysis_service import AnalysisService
from bloomwatch.services.application.overlay_service import OverlayService


BASE_TIME = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def api(test_client, history):
    """Test client backed by an in-memory history."""
    app.dependency_overrides[get_history_store] = lambda: history
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def mock_analysis_service(api, sample_record):
    service = AsyncMock(spec=AnalysisService)
    service.run_analysis.return_value = sample_record
    app.dependency_overrides[get_analysis_service] = lambda: service
    return service


@pytest.fixture
def stored_records(history, make_record):
    records = [
        make_record("analysis_a", BASE_TIME, tag="first"),
        make_record("analysis_b", BASE_TIME + timedelta(days=1), tag="second, north"),
        make_record("analysis_c", BASE_TIME + timedelta(days=2), geometry=None),
    ]
    for record in records:
        history.add(record)
    return records


# ============================================================
# Health Check Tests
# ============================================================

class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, test_client):
        """Root endpoint should return healthy status."""
        response = test_client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "service" in data
        assert "version" in data

    def test_health_endpoint(self, test_client):
        """Health endpoint should report imagery configuration."""
        response = test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert isinstance(data["imagery_configured"], bool)


# ============================================================
# Analysis Endpoint Tests
# ============================================================

class TestCreateAnalysis:
    """Tests for running an analysis."""

    def test_create_analysis(self, api, mock_analysis_service, sample_ring):
        response = api.post("/api/v1/analyses", json={
            "geometry": {"type": "Polygon", "coordinates": [sample_ring]},
            "tag": "North field",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["record"]["id"] == "analysis_1718000000000"
        assert data["record"]["cropType"] == "not available"
        assert data["summary"]["avg_ndvi"] == pytest.approx(0.5)
        assert data["summary"]["avg_fpi"] == pytest.approx(0.45)

        kwargs = mock_analysis_service.run_analysis.await_args.kwargs
        assert kwargs["tag"] == "North field"
        assert kwargs["window"] is None

    def test_custom_window(self, api, mock_analysis_service, sample_ring):
        mock_analysis_service.resolve_window.side_effect = lambda start, end, interval: TimeWindow(
            start=start or BASE_TIME - timedelta(days=365),
            end=end or BASE_TIME,
            interval=interval or "P1M",
        )

        response = api.post("/api/v1/analyses", json={
            "geometry": {"type": "Polygon", "coordinates": [sample_ring]},
            "start": "2023-01-01T00:00:00Z",
            "interval": "P10D",
        })

        assert response.status_code == 201
        window = mock_analysis_service.run_analysis.await_args.kwargs["window"]
        assert window.interval == "P10D"
        assert window.start.year == 2023

    @pytest.mark.parametrize("body", [
        {"geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 1]]]}},
        {"geometry": {"type": "Point", "coordinates": [0, 0]}},
        {"geometry": {"type": "Polygon", "coordinates": [[[0, 95], [1, 95], [1, 96], [0, 95]]]}},
        {"tag": "no geometry"},
    ])
    def test_invalid_geometry(self, api, mock_analysis_service, body):
        response = api.post("/api/v1/analyses", json=body)

        assert response.status_code == 422
        mock_analysis_service.run_analysis.assert_not_called()

    def test_invalid_interval(self, api, mock_analysis_service, sample_ring):
        response = api.post("/api/v1/analyses", json={
            "geometry": {"type": "Polygon", "coordinates": [sample_ring]},
            "interval": "monthly",
        })

        assert response.status_code == 422

    @pytest.mark.parametrize("error,status_code", [
        (ConfigurationError("credentials missing"), 503),
        (AuthenticationError("all endpoints failed"), 502),
        (RemoteServiceError("Statistics API error (400): bad", remote_status=400), 502),
    ])
    def test_pipeline_errors_mapped(self, api, mock_analysis_service, sample_ring, error, status_code):
        mock_analysis_service.run_analysis.side_effect = error

        response = api.post("/api/v1/analyses", json={
            "geometry": {"type": "Polygon", "coordinates": [sample_ring]},
        })

        assert response.status_code == status_code
        data = response.json()
        assert data["error"] == error.user_message
        assert data["detail"] == error.message


# ============================================================
# History Endpoint Tests
# ============================================================

class TestHistoryEndpoints:
    """Tests for listing, exporting and managing analyses."""

    def test_list_most_recent_first(self, api, stored_records):
        response = api.get("/api/v1/analyses")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        assert [item["record"]["id"] for item in data["analyses"]] == [
            "analysis_c", "analysis_b", "analysis_a",
        ]

    def test_get_unknown_analysis(self, api):
        response = api.get("/api/v1/analyses/analysis_missing")

        assert response.status_code == 404
        assert response.json()["error"] == "Analysis not found"

    def test_current_analysis(self, api, stored_records):
        assert api.get("/api/v1/analyses/current").json()["record"]["id"] == "analysis_c"

        response = api.put("/api/v1/analyses/analysis_a/current")

        assert response.status_code == 200
        assert api.get("/api/v1/analyses/current").json()["record"]["id"] == "analysis_a"

    def test_current_analysis_empty_history(self, api):
        response = api.get("/api/v1/analyses/current")

        assert response.status_code == 200
        assert response.json() is None

    def test_delete(self, api, stored_records):
        response = api.delete("/api/v1/analyses/analysis_b")

        assert response.status_code == 204
        assert api.get("/api/v1/analyses/analysis_b").status_code == 404

    def test_export_csv(self, api, stored_records):
        response = api.get("/api/v1/analyses/export.csv")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "bloomwatch_history.csv" in response.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0][0] == "analysis_id"
        assert rows[2][2] == "second, north"
        assert len(rows) == 4

    def test_revisit_and_consume(self, api, stored_records):
        response = api.post("/api/v1/analyses/analysis_a/revisit")

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is True
        assert data["focus"]["center"] == pytest.approx([40.415, -3.705])

        first = api.get("/api/v1/map/revisit")
        second = api.get("/api/v1/map/revisit")
        assert first.json()["geometry"]["type"] == "Polygon"
        assert second.json() is None

    def test_revisit_without_geometry(self, api, stored_records):
        response = api.post("/api/v1/analyses/analysis_c/revisit")

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is False
        assert data["message"] == "This analysis has no saved geometry."


# ============================================================
# Comparison Endpoint Tests
# ============================================================

class TestComparisonEndpoints:
    """Tests for selecting and comparing two analyses."""

    def test_full_comparison_flow(self, api, stored_records):
        api.put("/api/v1/comparison/selection/analysis_a")
        api.put("/api/v1/comparison/selection/analysis_b")

        rejected = api.put("/api/v1/comparison/selection/analysis_c").json()
        assert rejected["accepted"] is False
        assert rejected["selected"] == ["analysis_a", "analysis_b"]

        started = api.post("/api/v1/comparison").json()
        assert started["accepted"] is True
        assert api.get("/api/v1/comparison/selection").json()["selected"] == []

        response = api.get("/api/v1/comparison")
        assert response.status_code == 200
        ids = [item["record"]["id"] for item in response.json()["analyses"]]
        assert ids == ["analysis_a", "analysis_b"]

    def test_comparison_without_selection(self, api):
        response = api.get("/api/v1/comparison")

        assert response.status_code == 409

    def test_select_unknown_analysis(self, api):
        response = api.put("/api/v1/comparison/selection/analysis_missing")

        assert response.status_code == 404


# ============================================================
# Map Endpoint Tests
# ============================================================

class TestMapEndpoints:
    """Tests for area preview, points of interest and overlays."""

    def test_area_preview(self, api, sample_ring):
        response = api.post("/api/v1/map/area", json={
            "geometry": {"type": "Polygon", "coordinates": [sample_ring]},
        })

        assert response.status_code == 200
        data = response.json()
        assert data["hectares"] > 0
        assert data["approximate"] is False

    def test_malformed_area_is_zero(self, api):
        response = api.post("/api/v1/map/area", json={"geometry": [[0, 0], [1, 1]]})

        assert response.status_code == 200
        assert response.json()["hectares"] == 0.0

    def test_create_point_of_interest(self, api, mock_analysis_service):
        mock_analysis_service.save_point_of_interest.return_value = PointOfInterest(
            id=1, name="Tomelloso", coords=(39.16, -3.02)
        )

        response = api.post("/api/v1/map/points", json={"lat": 39.16, "lon": -3.02})

        assert response.status_code == 201
        assert response.json()["name"] == "Tomelloso"
        mock_analysis_service.save_point_of_interest.assert_awaited_once_with(
            lat=39.16, lon=-3.02, name=None
        )

    def test_point_out_of_range(self, api, mock_analysis_service):
        response = api.post("/api/v1/map/points", json={"lat": 91, "lon": 0})

        assert response.status_code == 422

    def test_list_points_of_interest(self, api, history):
        history.add_point_of_interest("Well", (1.0, 2.0), now=BASE_TIME)

        response = api.get("/api/v1/map/points")

        assert response.status_code == 200
        assert response.json()[0]["name"] == "Well"

    def test_overlay_disabled_without_instance(self, api):
        app.dependency_overrides[get_overlay_service] = lambda: OverlayService(instance_id="")

        response = api.get("/api/v1/map/overlays/ndvi", params={"year": 2023})

        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is False
        assert data["url"] is None

    def test_overlay_enabled(self, api):
        app.dependency_overrides[get_overlay_service] = lambda: OverlayService(instance_id="abc")

        response = api.get("/api/v1/map/overlays/ndvi", params={"year": 2023})

        assert response.json()["enabled"] is True
        assert "TIME=2023-01-01" in response.json()["url"]

    def test_overlay_year_validated(self, api):
        response = api.get("/api/v1/map/overlays/ndvi", params={"year": 1999})

        assert response.status_code == 422


# ============================================================
# Response Format Tests
# ============================================================

class TestResponseFormats:
    """Tests for API response formats."""

    def test_openapi_schema_available(self, test_client):
        response = test_client.get("/openapi.json")

        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/api/v1/analyses" in paths
        assert "/api/v1/comparison/selection/{analysis_id}" in paths
        assert "/api/v1/map/overlays/ndvi" in paths

    def test_docs_endpoint_available(self, test_client):
        response = test_client.get("/docs")

        assert response.status_code == 200


# ============================================================
# CORS Tests
# ============================================================

class TestCORS:
    """Tests for CORS configuration."""

    def test_cors_preflight(self, test_client):
        response = test_client.options(
            "/api/v1/analyses",
            headers={
                "Origin": "http://example.com",
                "Access-Control-Request-Method": "POST",
            }
        )

        assert response.status_code == 200
        assert "access-control-allow-origin" in response.headers
