"""
Domain models for analyses and the imagery service responses.

These models represent the core domain entities and should be independent
of any infrastructure concerns (API clients, storage, etc.).
"""
import calendar
from datetime import date as Date, datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================
# Geometry
# ============================================================

class Geometry(BaseModel):
    """GeoJSON polygon in WGS84 [lon, lat] order. Rectangles are polygons too."""
    type: Literal["Polygon"] = "Polygon"
    coordinates: tuple[tuple[tuple[float, float], ...], ...] = Field(
        description="Linear rings; the first one is the boundary"
    )

    class Config:
        frozen = True

    @field_validator("coordinates")
    @classmethod
    def _check_rings(cls, rings):
        if not rings or len(rings[0]) < 3:
            raise ValueError("Polygon boundary needs at least 3 positions")
        for ring in rings:
            for lon, lat in ring:
                if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
                    raise ValueError(f"Position ({lon}, {lat}) is outside WGS84 bounds")
        return rings

    @property
    def exterior(self) -> list[tuple[float, float]]:
        return list(self.coordinates[0])

    def to_geojson(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class PointOfInterest(BaseModel):
    """A named marker dropped on the map."""
    id: int
    name: str
    coords: tuple[float, float] = Field(description="(latitude, longitude)")


# ============================================================
# Analysis records
# ============================================================

class TimePoint(BaseModel):
    """Value of one index for one aggregation interval."""
    date: Date
    value: float

    class Config:
        frozen = True


class IndexSeries(BaseModel):
    """Per-index time series, each ordered by date ascending."""
    ndvi: tuple[TimePoint, ...] = ()
    ndwi: tuple[TimePoint, ...] = ()
    ndre: tuple[TimePoint, ...] = ()
    cloud_coverage: tuple[TimePoint, ...] = Field(default=(), alias="cloudCoverage")

    class Config:
        frozen = True
        populate_by_name = True


class AnalysisRecord(BaseModel):
    """A completed analysis, as stored in the history."""
    id: str
    date: datetime
    area: float = Field(description="Area in hectares, 2 decimals")
    geometry: Optional[Geometry] = None
    crop_type: str = Field(default="not available", alias="cropType")
    indices: IndexSeries = Field(default_factory=IndexSeries)
    recommendations: str = ""
    tag: Optional[str] = None

    class Config:
        frozen = True
        populate_by_name = True


class IndexSummary(BaseModel):
    """Series means, latest values and the derived FPI for one record."""
    avg_ndvi: Optional[float] = None
    avg_ndwi: Optional[float] = None
    avg_ndre: Optional[float] = None
    avg_cloud_pct: Optional[float] = None
    avg_fpi: Optional[float] = None
    latest_ndvi: Optional[float] = None
    latest_ndwi: Optional[float] = None
    latest_ndre: Optional[float] = None
    latest_cloud_pct: Optional[float] = None
    latest_fpi: Optional[float] = None


# ============================================================
# Analysis window
# ============================================================

def _months_before(moment: datetime, months: int) -> datetime:
    year, month = divmod(moment.month - 1 - months, 12)
    year += moment.year
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def format_instant(moment: datetime) -> str:
    """Render an instant the way the imagery service expects (UTC, Z suffix)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class TimeWindow(BaseModel):
    """Time range and aggregation interval of a statistics request."""
    start: datetime
    end: datetime
    interval: str = "P1M"

    @classmethod
    def trailing(
        cls,
        months: int = 12,
        interval: str = "P1M",
        now: Optional[datetime] = None,
    ) -> "TimeWindow":
        end = now or datetime.now(timezone.utc)
        return cls(start=_months_before(end, months), end=end, interval=interval)

    def time_range(self) -> dict[str, str]:
        return {"from": format_instant(self.start), "to": format_instant(self.end)}


# ============================================================
# Imagery service responses
# ============================================================

class StatsBlock(BaseModel):
    """Statistics of one band over one interval. Absent values are None or NaN."""
    mean: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    stDev: Optional[float] = None
    sampleCount: Optional[int] = None
    noDataCount: Optional[int] = None

    @field_validator("mean", "min", "max", "stDev", mode="before")
    @classmethod
    def _parse_text_numbers(cls, value):
        # The service reports fully masked intervals as "NaN" strings
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return None
        return value


class BandStatistics(BaseModel):
    stats: StatsBlock


class OutputStatistics(BaseModel):
    bands: dict[str, BandStatistics] = Field(default_factory=dict)


class StatisticsInterval(BaseModel):
    start: datetime = Field(alias="from")
    end: Optional[datetime] = Field(default=None, alias="to")

    class Config:
        populate_by_name = True


class StatisticsEntry(BaseModel):
    """One aggregation interval of a statistics response."""
    interval: StatisticsInterval
    outputs: dict[str, OutputStatistics] = Field(default_factory=dict)
    error: Optional[dict[str, Any]] = None

    def band_mean(self, output: str, band: str) -> Optional[float]:
        """Mean of a band, or None when the output or band is missing."""
        bandset = self.outputs.get(output)
        if bandset is None:
            return None
        band_stats = bandset.bands.get(band)
        if band_stats is None:
            return None
        return band_stats.stats.mean


class StatisticsResponse(BaseModel):
    """Response of the statistics endpoint."""
    data: list[StatisticsEntry]
    status: Optional[str] = None


class LandCoverResult(BaseModel):
    """Acknowledgement of a classification raster; the pixels are not decoded."""
    label: Optional[str] = None
    content_type: Optional[str] = None
    size_bytes: int = 0


class RegionData(BaseModel):
    """Joined output of the statistics and classification requests."""
    statistics: StatisticsResponse
    land_cover: Optional[LandCoverResult] = None
