"""
API request models using Pydantic.
"""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field

from bloomwatch.domain.models import Geometry


class AnalysisRequest(BaseModel):
    """A finished drawing to analyze."""
    geometry: Geometry = Field(
        description="Polygon or rectangle drawn on the map"
    )
    tag: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Free label shown in the history and the CSV export"
    )
    start: Optional[datetime] = Field(
        default=None,
        description="Start of the time window (defaults to one year ago)"
    )
    end: Optional[datetime] = Field(
        default=None,
        description="End of the time window (defaults to now)"
    )
    interval: Optional[str] = Field(
        default=None,
        pattern=r"^P(\d+[YMWD])+$",
        description="ISO-8601 aggregation interval, e.g. P1M",
        examples=["P1M"]
    )

    class Config:
        json_schema_extra = {
            "example": {
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [[
                        [-3.71, 40.41],
                        [-3.70, 40.41],
                        [-3.70, 40.42],
                        [-3.71, 40.42],
                        [-3.71, 40.41],
                    ]]
                },
                "tag": "North field"
            }
        }


class AreaRequest(BaseModel):
    """A shape to measure; malformed shapes measure 0."""
    geometry: Any = Field(
        description="GeoJSON geometry, list of rings or a bare ring"
    )


class PointOfInterestRequest(BaseModel):
    """A marker dropped on the map."""
    lat: float = Field(ge=-90, le=90, description="Latitude in degrees")
    lon: float = Field(ge=-180, le=180, description="Longitude in degrees")
    name: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Name; looked up by reverse geocoding when omitted"
    )
