"""
API response models using Pydantic.
"""
from typing import List, Optional
from pydantic import BaseModel, Field

from bloomwatch.domain.models import AnalysisRecord, Geometry, IndexSummary


class AnalysisResponse(BaseModel):
    """An analysis with its index summary."""
    record: AnalysisRecord = Field(
        description="The stored analysis"
    )
    summary: IndexSummary = Field(
        description="Means and latest values of every index, with FPI"
    )


class AnalysisListResponse(BaseModel):
    """Response model for the history listing."""
    count: int = Field(
        description="Number of analyses in the history"
    )
    analyses: List[AnalysisResponse] = Field(
        description="Analyses, most recent first"
    )


class SelectionResponse(BaseModel):
    """Comparison selection after a change."""
    accepted: bool = Field(
        description="False when the change was rejected"
    )
    selected: List[str] = Field(
        description="Selected analysis ids (at most 2)"
    )
    message: Optional[str] = Field(
        default=None,
        description="Why the change was rejected"
    )


class ComparisonResponse(BaseModel):
    """The two analyses of a comparison."""
    analyses: List[AnalysisResponse] = Field(
        description="The compared analyses, in selection order"
    )


class MapFocusResponse(BaseModel):
    """Where the map should move to show a stored geometry."""
    geometry: Geometry
    bounds: tuple[float, float, float, float] = Field(
        description="Min longitude, min latitude, max longitude, max latitude"
    )
    center: tuple[float, float] = Field(
        description="Latitude, longitude of the centroid"
    )


class RevisitResponse(BaseModel):
    """Result of a revisit request."""
    accepted: bool
    focus: Optional[MapFocusResponse] = None
    message: Optional[str] = None


class AreaResponse(BaseModel):
    """Area of a drawn shape."""
    hectares: float = Field(
        description="Area in hectares; 0 for malformed shapes"
    )
    approximate: bool = Field(
        description="True when the planar fallback (square degrees) was used"
    )


class OverlayResponse(BaseModel):
    """NDVI WMS overlay for a year."""
    year: int
    enabled: bool
    url: Optional[str] = Field(
        default=None,
        description="Tile URL template; {bbox-epsg-3857} is filled in per tile"
    )
    reason: Optional[str] = Field(
        default=None,
        description="Why the overlay is disabled"
    )
