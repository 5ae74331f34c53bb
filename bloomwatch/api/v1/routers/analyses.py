"""
API router for analysis endpoints.
"""
from fastapi import APIRouter, Path, Request, Response, status
from typing import Annotated, Optional

from bloomwatch.api.dependencies import AnalysisServiceDep, HistoryStoreDep
from bloomwatch.api.rate_limit import ANALYSIS_RATE_LIMIT, limiter
from bloomwatch.api.v1.models.requests import AnalysisRequest
from bloomwatch.api.v1.models.responses import (
    AnalysisListResponse,
    AnalysisResponse,
    MapFocusResponse,
    RevisitResponse,
)
from bloomwatch.domain.models import AnalysisRecord
from bloomwatch.services.domain.time_series_processor import summarize


router = APIRouter(
    prefix="/analyses",
    tags=["analyses"],
)

AnalysisId = Annotated[str, Path(description="Identifier of the analysis")]


def to_response(record: AnalysisRecord) -> AnalysisResponse:
    return AnalysisResponse(record=record, summary=summarize(record))


@router.post(
    "",
    response_model=AnalysisResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Analyze a drawn region",
    description="""
    Analyze the region drawn on the map and save the result in the history.

    This endpoint:
    1. Measures the region in hectares
    2. Obtains an access token for the imagery service
    3. Fetches monthly NDVI/NDWI/NDRE/cloud statistics and the land cover
       raster concurrently
    4. Builds the time series and saves the analysis as the current one

    Nothing is saved when any step fails.
    """,
    responses={
        502: {"description": "Authentication or imagery service failure"},
        503: {"description": "Imagery service credentials not configured"},
    }
)
@limiter.limit(ANALYSIS_RATE_LIMIT)
async def create_analysis(
    request: Request,
    analysis_request: AnalysisRequest,
    analysis_service: AnalysisServiceDep,
) -> AnalysisResponse:
    """
    Run an analysis.

    Args:
        request: Incoming request (used by the rate limiter)
        analysis_request: Geometry, tag and optional time window
        analysis_service: Analysis service (injected dependency)

    Returns:
        AnalysisResponse with the saved record
    """
    window = None
    if analysis_request.start or analysis_request.end or analysis_request.interval:
        window = analysis_service.resolve_window(
            start=analysis_request.start,
            end=analysis_request.end,
            interval=analysis_request.interval,
        )

    record = await analysis_service.run_analysis(
        geometry=analysis_request.geometry,
        tag=analysis_request.tag,
        window=window,
    )
    return to_response(record)


@router.get("", response_model=AnalysisListResponse, summary="List the history")
def list_analyses(history: HistoryStoreDep) -> AnalysisListResponse:
    """List every analysis, most recent first."""
    records = history.list()
    return AnalysisListResponse(
        count=len(records),
        analyses=[to_response(record) for record in records],
    )


@router.get(
    "/export.csv",
    summary="Export the history as CSV",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
def export_analyses(history: HistoryStoreDep) -> Response:
    """Download the history with per-index means, one row per analysis."""
    return Response(
        content=history.export_csv(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="bloomwatch_history.csv"'},
    )


@router.get(
    "/current",
    response_model=Optional[AnalysisResponse],
    summary="Get the current analysis",
)
def get_current_analysis(history: HistoryStoreDep) -> Optional[AnalysisResponse]:
    """The analysis the details view shows, or null when the history is empty."""
    record = history.current()
    return to_response(record) if record else None


@router.get("/{analysis_id}", response_model=AnalysisResponse, summary="Get an analysis")
def get_analysis(analysis_id: AnalysisId, history: HistoryStoreDep) -> AnalysisResponse:
    return to_response(history.get(analysis_id))


@router.put(
    "/{analysis_id}/current",
    response_model=AnalysisResponse,
    summary="Open an analysis in the details view",
)
def set_current_analysis(analysis_id: AnalysisId, history: HistoryStoreDep) -> AnalysisResponse:
    history.set_current(analysis_id)
    return to_response(history.get(analysis_id))


@router.delete(
    "/{analysis_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an analysis",
)
def delete_analysis(analysis_id: AnalysisId, history: HistoryStoreDep) -> Response:
    history.delete(analysis_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{analysis_id}/revisit",
    response_model=RevisitResponse,
    summary="Show an analysis on the map again",
)
def revisit_analysis(analysis_id: AnalysisId, history: HistoryStoreDep) -> RevisitResponse:
    """
    Queue the analysis geometry for the map.

    Analyses without a stored geometry are rejected with a message and
    nothing changes.
    """
    result = history.revisit(analysis_id)
    focus = None
    if result.focus is not None:
        focus = MapFocusResponse(
            geometry=result.focus.geometry,
            bounds=result.focus.bounds,
            center=result.focus.center,
        )
    return RevisitResponse(accepted=result.accepted, focus=focus, message=result.message)
