"""
Unit tests for time series processing.

Tests cover:
- Series extraction and ordering
- Dropping intervals without a finite mean
- FPI and index normalization
- Record construction
- Summaries
"""
import math
import pytest
from datetime import date, datetime, timezone

from bloomwatch.domain.models import (
    AnalysisRecord,
    IndexSeries,
    LandCoverResult,
    StatisticsResponse,
    TimePoint,
    TimeWindow,
)
from bloomwatch.services.domain.time_series_processor import (
    DEFAULT_RECOMMENDATIONS,
    LAND_COVER_UNAVAILABLE,
    TimeSeriesProcessor,
    compute_fpi,
    latest_value,
    make_record_id,
    normalize_index,
    series_mean,
    summarize,
)


def single_band_response(means: list) -> StatisticsResponse:
    """Statistics response with one interval per mean, NDVI band only."""
    data = []
    for month, mean in enumerate(means, start=1):
        data.append({
            "interval": {"from": f"2024-{month:02d}-01T00:00:00Z", "to": f"2024-{month + 1:02d}-01T00:00:00Z"},
            "outputs": {"indices": {"bands": {"B0": {"stats": {"mean": mean}}}}},
        })
    return StatisticsResponse.model_validate({"data": data})


# ============================================================
# Index Math Tests
# ============================================================

class TestIndexMath:
    """Tests for normalization and FPI."""

    @pytest.mark.parametrize("value,expected", [
        (-1.0, 0.0),
        (0.0, 0.5),
        (1.0, 1.0),
        (-3.0, 0.0),
        (2.5, 1.0),
    ])
    def test_normalize_index_is_clamped(self, value, expected):
        assert normalize_index(value) == pytest.approx(expected)

    def test_fpi(self):
        """norm(0.6) = 0.8 and norm(-0.2) = 0.4, so FPI = 0.8 * 0.6."""
        assert compute_fpi(0.6, -0.2) == pytest.approx(0.48)

    def test_fpi_stays_in_unit_interval(self):
        for ndvi in (-1.0, -0.3, 0.0, 0.7, 1.0):
            for ndwi in (-1.0, 0.0, 0.4, 1.0):
                assert 0.0 <= compute_fpi(ndvi, ndwi) <= 1.0

    @pytest.mark.parametrize("ndvi,ndwi", [
        (None, 0.1),
        (0.5, None),
        (float("nan"), 0.1),
        (0.5, float("inf")),
    ])
    def test_fpi_absent_for_missing_inputs(self, ndvi, ndwi):
        assert compute_fpi(ndvi, ndwi) is None

    def test_series_mean_and_latest(self):
        series = (
            TimePoint(date=date(2024, 1, 1), value=0.2),
            TimePoint(date=date(2024, 2, 1), value=0.4),
        )

        assert series_mean(series) == pytest.approx(0.3)
        assert latest_value(series) == 0.4

    def test_empty_series(self):
        assert series_mean(()) is None
        assert latest_value(()) is None


# ============================================================
# Series Extraction Tests
# ============================================================

class TestExtractSeries:
    """Tests for TimeSeriesProcessor.extract_series."""

    def test_nan_interval_dropped(self):
        series = TimeSeriesProcessor().extract_series(single_band_response([float("nan"), 0.42]))

        assert len(series.ndvi) == 1
        assert series.ndvi[0].value == 0.42
        assert series.ndvi[0].date == date(2024, 2, 1)

    def test_nan_string_dropped(self):
        series = TimeSeriesProcessor().extract_series(single_band_response(["NaN", 0.42]))

        assert [point.value for point in series.ndvi] == [0.42]

    def test_sorted_by_date(self, sample_statistics):
        series = TimeSeriesProcessor().extract_series(sample_statistics)

        assert [point.date for point in series.ndvi] == [date(2024, 1, 1), date(2024, 3, 1)]
        assert [point.value for point in series.ndvi] == [0.42, 0.6]
        assert [point.value for point in series.ndwi] == [-0.1, -0.2]
        assert [point.value for point in series.ndre] == [0.3, 0.35]

    def test_cloud_coverage_in_percent(self, sample_statistics):
        """Cloud fraction is reported as a percentage, kept for clouded months."""
        series = TimeSeriesProcessor().extract_series(sample_statistics)

        assert [point.value for point in series.cloud_coverage] == [10.0, 100.0, 0.0]

    def test_values_rounded(self):
        series = TimeSeriesProcessor().extract_series(single_band_response([0.123456789]))

        assert series.ndvi[0].value == 0.1235

    def test_missing_outputs_give_empty_series(self):
        response = StatisticsResponse.model_validate({
            "data": [{"interval": {"from": "2024-01-01T00:00:00Z"}, "outputs": {}}]
        })

        series = TimeSeriesProcessor().extract_series(response)

        assert series.model_dump() == IndexSeries().model_dump()

    def test_every_value_is_finite(self, sample_statistics):
        series = TimeSeriesProcessor().extract_series(sample_statistics)

        for points in (series.ndvi, series.ndwi, series.ndre, series.cloud_coverage):
            assert all(math.isfinite(point.value) for point in points)


# ============================================================
# Record Construction Tests
# ============================================================

class TestToAnalysisRecord:
    """Tests for TimeSeriesProcessor.to_analysis_record."""

    NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)

    def test_record_fields(self, sample_statistics, sample_geometry):
        land_cover = LandCoverResult(label="Land cover raster received", size_bytes=10)

        record = TimeSeriesProcessor().to_analysis_record(
            statistics=sample_statistics,
            area_ha=94.7654,
            geometry=sample_geometry,
            land_cover=land_cover,
            tag="North field",
            now=self.NOW,
        )

        assert record.id == make_record_id(self.NOW)
        assert record.id.startswith("analysis_")
        assert record.date == self.NOW
        assert record.area == 94.77
        assert record.geometry == sample_geometry
        assert record.crop_type == "Land cover raster received"
        assert record.recommendations == DEFAULT_RECOMMENDATIONS
        assert record.tag == "North field"
        assert len(record.indices.ndvi) == 2

    def test_crop_type_defaults_without_land_cover(self, sample_statistics, sample_geometry):
        record = TimeSeriesProcessor().to_analysis_record(
            sample_statistics, 1.0, sample_geometry, land_cover=None, now=self.NOW,
        )

        assert record.crop_type == LAND_COVER_UNAVAILABLE

    def test_crop_type_defaults_without_label(self, sample_statistics, sample_geometry):
        record = TimeSeriesProcessor().to_analysis_record(
            sample_statistics, 1.0, sample_geometry, land_cover=LandCoverResult(), now=self.NOW,
        )

        assert record.crop_type == LAND_COVER_UNAVAILABLE

    def test_non_finite_area_stored_as_zero(self, sample_statistics, sample_geometry):
        record = TimeSeriesProcessor().to_analysis_record(
            sample_statistics, float("nan"), sample_geometry, None, now=self.NOW,
        )

        assert record.area == 0.0

    def test_deterministic(self, sample_statistics, sample_geometry):
        processor = TimeSeriesProcessor()

        first = processor.to_analysis_record(sample_statistics, 2.0, sample_geometry, None, now=self.NOW)
        second = processor.to_analysis_record(sample_statistics, 2.0, sample_geometry, None, now=self.NOW)

        assert first == second

    def test_record_survives_json_round_trip(self, sample_statistics, sample_geometry):
        record = TimeSeriesProcessor().to_analysis_record(
            sample_statistics, 2.0, sample_geometry, None, now=self.NOW,
        )

        dumped = record.model_dump(mode="json", by_alias=True)

        assert "cropType" in dumped
        assert "cloudCoverage" in dumped["indices"]
        assert AnalysisRecord.model_validate(dumped).model_dump() == record.model_dump()


# ============================================================
# Summary Tests
# ============================================================

class TestSummarize:
    """Tests for the per-record summary."""

    def test_summary(self, sample_record):
        summary = summarize(sample_record)

        assert summary.avg_ndvi == pytest.approx(0.5)
        assert summary.avg_ndwi == pytest.approx(-0.2)
        assert summary.avg_ndre == pytest.approx(0.3)
        assert summary.avg_cloud_pct == pytest.approx(12.5)
        assert summary.avg_fpi == pytest.approx(0.75 * 0.6)
        assert summary.latest_ndvi == 0.6
        assert summary.latest_fpi == pytest.approx(0.48)

    def test_summary_of_empty_record(self):
        record = AnalysisRecord(id="analysis_1", date=datetime(2024, 1, 1), area=0.0)

        summary = summarize(record)

        assert summary.avg_ndvi is None
        assert summary.avg_fpi is None
        assert summary.latest_cloud_pct is None


# ============================================================
# Time Window Tests
# ============================================================

class TestTimeWindow:
    """Tests for the analysis window."""

    def test_trailing_window(self):
        now = datetime(2024, 3, 31, 8, 30, tzinfo=timezone.utc)

        window = TimeWindow.trailing(months=1, now=now)

        assert window.start == datetime(2024, 2, 29, 8, 30, tzinfo=timezone.utc)
        assert window.time_range() == {
            "from": "2024-02-29T08:30:00Z",
            "to": "2024-03-31T08:30:00Z",
        }

    def test_trailing_year(self):
        now = datetime(2024, 6, 15, tzinfo=timezone.utc)

        window = TimeWindow.trailing(months=12, now=now)

        assert window.start == datetime(2023, 6, 15, tzinfo=timezone.utc)
        assert window.interval == "P1M"
