"""
Domain service: time series extraction and derived indices.

Turns a statistics response into per-date NDVI/NDWI/NDRE/cloud series and
computes the experimental fitness/pressure index (FPI):

    norm(v) = clamp((v + 1) / 2, 0, 1)
    FPI = norm(NDVI) * (1 - norm(NDWI))

Intervals without a finite mean (fully cloud or snow masked) are dropped
rather than stored as NaN.
"""
import logging
import math
from datetime import date, datetime, timezone
from typing import Optional, Sequence

import numpy as np

from bloomwatch.domain.models import (
    AnalysisRecord,
    Geometry,
    IndexSeries,
    IndexSummary,
    LandCoverResult,
    StatisticsResponse,
    TimePoint,
)
from bloomwatch.infrastructure.api_constants import APIConstants

logger = logging.getLogger(__name__)

RECORD_ID_PREFIX = "analysis_"
LAND_COVER_UNAVAILABLE = "not available"
DEFAULT_RECOMMENDATIONS = "Recommendations based on real data coming soon."


def _is_finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def normalize_index(value: float) -> float:
    """Map a normalized-difference index from [-1, 1] into [0, 1], clamped."""
    return min(1.0, max(0.0, (value + 1.0) / 2.0))


def compute_fpi(ndvi: Optional[float], ndwi: Optional[float]) -> Optional[float]:
    """
    Fitness/pressure index from NDVI and NDWI.

    Returns:
        FPI in [0, 1], or None when either input is absent or not finite
    """
    if not (_is_finite(ndvi) and _is_finite(ndwi)):
        return None
    return normalize_index(ndvi) * (1.0 - normalize_index(ndwi))


def series_mean(series: Sequence[TimePoint]) -> Optional[float]:
    """Arithmetic mean of a series, or None when it is empty."""
    if not series:
        return None
    return float(np.mean([point.value for point in series]))


def latest_value(series: Sequence[TimePoint]) -> Optional[float]:
    """Value of the most recent finite point, or None."""
    for point in reversed(series):
        if _is_finite(point.value):
            return point.value
    return None


def summarize(record: AnalysisRecord) -> IndexSummary:
    """Means and latest values of every index of a record, with FPI for both."""
    indices = record.indices
    avg_ndvi = series_mean(indices.ndvi)
    avg_ndwi = series_mean(indices.ndwi)
    latest_ndvi = latest_value(indices.ndvi)
    latest_ndwi = latest_value(indices.ndwi)
    return IndexSummary(
        avg_ndvi=avg_ndvi,
        avg_ndwi=avg_ndwi,
        avg_ndre=series_mean(indices.ndre),
        avg_cloud_pct=series_mean(indices.cloud_coverage),
        avg_fpi=compute_fpi(avg_ndvi, avg_ndwi),
        latest_ndvi=latest_ndvi,
        latest_ndwi=latest_ndwi,
        latest_ndre=latest_value(indices.ndre),
        latest_cloud_pct=latest_value(indices.cloud_coverage),
        latest_fpi=compute_fpi(latest_ndvi, latest_ndwi),
    )


def make_record_id(now: datetime) -> str:
    """Record id derived from the creation time in epoch milliseconds."""
    return f"{RECORD_ID_PREFIX}{int(now.timestamp() * 1000)}"


def next_record_id(record_id: str) -> str:
    """Id one millisecond after the given one."""
    millis = int(record_id[len(RECORD_ID_PREFIX):])
    return f"{RECORD_ID_PREFIX}{millis + 1}"


class TimeSeriesProcessor:
    """
    Builds analysis records from statistics responses.

    Pure: the same inputs and creation time always give the same record.
    """

    def extract_series(self, statistics: StatisticsResponse) -> IndexSeries:
        """
        Extract the per-index series of a statistics response.

        Args:
            statistics: Validated statistics response

        Returns:
            IndexSeries with every series sorted by date ascending
        """
        ndvi: list[TimePoint] = []
        ndwi: list[TimePoint] = []
        ndre: list[TimePoint] = []
        cloud: list[TimePoint] = []
        dropped = 0

        entries = sorted(statistics.data, key=lambda entry: entry.interval.start)
        for entry in entries:
            day: date = entry.interval.start.date()

            for series, band in (
                (ndvi, APIConstants.NDVI_BAND),
                (ndwi, APIConstants.NDWI_BAND),
                (ndre, APIConstants.NDRE_BAND),
            ):
                mean = entry.band_mean(APIConstants.INDICES_OUTPUT, band)
                if _is_finite(mean):
                    series.append(TimePoint(date=day, value=round(mean, 4)))
                else:
                    dropped += 1

            cloud_mean = entry.band_mean(APIConstants.CLOUD_OUTPUT, APIConstants.CLOUD_BAND)
            if _is_finite(cloud_mean):
                cloud.append(TimePoint(date=day, value=round(cloud_mean * 100, 2)))

        if dropped:
            logger.debug(f"Dropped {dropped} index values without a finite mean")

        return IndexSeries(
            ndvi=tuple(ndvi),
            ndwi=tuple(ndwi),
            ndre=tuple(ndre),
            cloud_coverage=tuple(cloud),
        )

    def to_analysis_record(
        self,
        statistics: StatisticsResponse,
        area_ha: float,
        geometry: Optional[Geometry],
        land_cover: Optional[LandCoverResult],
        tag: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisRecord:
        """
        Build the record of a completed analysis.

        Args:
            statistics: Validated statistics response
            area_ha: Area of the region in hectares
            geometry: Region drawn by the user
            land_cover: Classification result, if any
            tag: Optional user label
            now: Creation time (defaults to the current UTC time)

        Returns:
            AnalysisRecord
        """
        now = now or datetime.now(timezone.utc)

        crop_type = LAND_COVER_UNAVAILABLE
        if land_cover is None:
            logger.warning("No land cover classification available for this analysis")
        elif isinstance(land_cover.label, str) and land_cover.label:
            crop_type = land_cover.label

        area = round(area_ha, 2) if _is_finite(area_ha) else 0.0

        return AnalysisRecord(
            id=make_record_id(now),
            date=now,
            area=area,
            geometry=geometry,
            crop_type=crop_type,
            indices=self.extract_series(statistics),
            recommendations=DEFAULT_RECOMMENDATIONS,
            tag=tag,
        )
