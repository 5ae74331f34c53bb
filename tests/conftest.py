"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Sample geometry
- Sample statistics responses
- Analysis record factory
- In-memory history store
- FastAPI test client
"""
import pytest
from datetime import date, datetime, timezone
from typing import Optional
from fastapi.testclient import TestClient

from bloomwatch.main import app
from bloomwatch.domain.models import (
    AnalysisRecord,
    Geometry,
    IndexSeries,
    StatisticsResponse,
    TimePoint,
)
from bloomwatch.infrastructure.local_store import LocalStore
from bloomwatch.services.application.history_store import HistoryStore


def _entry(start: str, end: str, ndvi, ndwi, ndre, cloud) -> dict:
    def band(mean):
        return {"stats": {"mean": mean, "min": mean, "max": mean, "stDev": 0.0, "sampleCount": 100}}

    return {
        "interval": {"from": start, "to": end},
        "outputs": {
            "indices": {"bands": {"B0": band(ndvi), "B1": band(ndwi), "B2": band(ndre)}},
            "cloud_info": {"bands": {"B0": band(cloud)}},
        },
    }


# ============================================================
# Sample Data Fixtures
# ============================================================

@pytest.fixture
def sample_ring() -> list[list[float]]:
    """A small square field in central Spain, [lon, lat] order."""
    return [
        [-3.71, 40.41],
        [-3.70, 40.41],
        [-3.70, 40.42],
        [-3.71, 40.42],
        [-3.71, 40.41],  # Close the polygon
    ]


@pytest.fixture
def sample_geometry(sample_ring) -> Geometry:
    return Geometry(coordinates=[sample_ring])


@pytest.fixture
def statistics_payload() -> dict:
    """
    Statistics response with three monthly intervals, out of order.

    February is fully clouded: its index means are "NaN" strings.
    """
    return {
        "status": "OK",
        "data": [
            _entry("2024-03-01T00:00:00Z", "2024-04-01T00:00:00Z", 0.6, -0.2, 0.35, 0.0),
            _entry("2024-01-01T00:00:00Z", "2024-02-01T00:00:00Z", 0.42, -0.1, 0.3, 0.1),
            _entry("2024-02-01T00:00:00Z", "2024-03-01T00:00:00Z", "NaN", "NaN", "NaN", 1.0),
        ],
    }


@pytest.fixture
def sample_statistics(statistics_payload) -> StatisticsResponse:
    return StatisticsResponse.model_validate(statistics_payload)


@pytest.fixture
def make_record(sample_geometry):
    """Factory for analysis records with a short NDVI/NDWI history."""

    def factory(
        record_id: str,
        created: datetime,
        tag: Optional[str] = None,
        geometry: Optional[Geometry] = sample_geometry,
        area: float = 123.45,
    ) -> AnalysisRecord:
        return AnalysisRecord(
            id=record_id,
            date=created,
            area=area,
            geometry=geometry,
            crop_type="not available",
            indices=IndexSeries(
                ndvi=(
                    TimePoint(date=date(2024, 1, 1), value=0.4),
                    TimePoint(date=date(2024, 2, 1), value=0.6),
                ),
                ndwi=(
                    TimePoint(date=date(2024, 1, 1), value=-0.2),
                    TimePoint(date=date(2024, 2, 1), value=-0.2),
                ),
                ndre=(TimePoint(date=date(2024, 1, 1), value=0.3),),
                cloud_coverage=(TimePoint(date=date(2024, 1, 1), value=12.5),),
            ),
            recommendations="Recommendations based on real data coming soon.",
            tag=tag,
        )

    return factory


@pytest.fixture
def sample_record(make_record) -> AnalysisRecord:
    return make_record("analysis_1718000000000", datetime(2024, 6, 10, 6, 13, 20, tzinfo=timezone.utc))


# ============================================================
# Storage Fixtures
# ============================================================

@pytest.fixture
def local_store() -> LocalStore:
    """Store without a file: state lives in memory only."""
    return LocalStore()


@pytest.fixture
def history(local_store) -> HistoryStore:
    return HistoryStore(local_store)


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def test_client() -> TestClient:
    """Create a synchronous test client for FastAPI."""
    return TestClient(app)
