"""
API router for the map page: area preview, revisits, markers and overlays.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Query, status
from typing import Annotated, List, Optional

from bloomwatch.api.dependencies import (
    AnalysisServiceDep,
    AreaCalculatorDep,
    HistoryStoreDep,
    OverlayServiceDep,
)
from bloomwatch.api.v1.models.requests import AreaRequest, PointOfInterestRequest
from bloomwatch.api.v1.models.responses import AreaResponse, MapFocusResponse, OverlayResponse
from bloomwatch.domain.models import PointOfInterest


router = APIRouter(
    prefix="/map",
    tags=["map"],
)

# First full year of Sentinel-2 L2A coverage
FIRST_OVERLAY_YEAR = 2017


@router.post("/area", response_model=AreaResponse, summary="Measure a drawn shape")
def measure_area(area_request: AreaRequest, area_calculator: AreaCalculatorDep) -> AreaResponse:
    measurement = area_calculator.measure(area_request.geometry)
    return AreaResponse(
        hectares=round(measurement.hectares, 2),
        approximate=measurement.approximate,
    )


@router.get(
    "/revisit",
    response_model=Optional[MapFocusResponse],
    summary="Take the queued revisit location",
)
def take_revisit(history: HistoryStoreDep) -> Optional[MapFocusResponse]:
    """Return the geometry queued by a revisit and clear it; null when none is queued."""
    focus = history.consume_revisit()
    if focus is None:
        return None
    return MapFocusResponse(geometry=focus.geometry, bounds=focus.bounds, center=focus.center)


@router.post(
    "/points",
    response_model=PointOfInterest,
    status_code=status.HTTP_201_CREATED,
    summary="Save a point of interest",
)
async def create_point_of_interest(
    point_request: PointOfInterestRequest,
    analysis_service: AnalysisServiceDep,
) -> PointOfInterest:
    """Save a marker; unnamed markers are named after the place they are on."""
    return await analysis_service.save_point_of_interest(
        lat=point_request.lat,
        lon=point_request.lon,
        name=point_request.name,
    )


@router.get("/points", response_model=List[PointOfInterest], summary="List points of interest")
def list_points_of_interest(history: HistoryStoreDep) -> List[PointOfInterest]:
    return history.list_points_of_interest()


@router.get("/overlays/ndvi", response_model=OverlayResponse, summary="NDVI overlay for a year")
def ndvi_overlay(
    overlay_service: OverlayServiceDep,
    year: Annotated[
        Optional[int],
        Query(ge=FIRST_OVERLAY_YEAR, description="Year to show (defaults to the current year)"),
    ] = None,
) -> OverlayResponse:
    """
    Get the NDVI tile URL template for a year.

    Without a configured instance id the overlay is reported as disabled
    instead of failing.
    """
    layer = overlay_service.ndvi_layer(year or datetime.now(timezone.utc).year)
    return OverlayResponse(
        year=layer.year,
        enabled=layer.enabled,
        url=layer.url,
        reason=layer.reason,
    )
