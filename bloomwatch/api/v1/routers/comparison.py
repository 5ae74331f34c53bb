"""
API router for comparing two analyses.
"""
from fastapi import APIRouter, Path
from typing import Annotated

from bloomwatch.api.dependencies import HistoryStoreDep
from bloomwatch.api.v1.models.responses import ComparisonResponse, SelectionResponse
from bloomwatch.api.v1.routers.analyses import to_response
from bloomwatch.services.application.history_store import SelectionResult


router = APIRouter(
    prefix="/comparison",
    tags=["comparison"],
)


def to_selection_response(result: SelectionResult) -> SelectionResponse:
    return SelectionResponse(
        accepted=result.accepted,
        selected=result.selected,
        message=result.message,
    )


@router.get("/selection", response_model=SelectionResponse, summary="Get the selection")
def get_selection(history: HistoryStoreDep) -> SelectionResponse:
    return SelectionResponse(accepted=True, selected=history.selection())


@router.put(
    "/selection/{analysis_id}",
    response_model=SelectionResponse,
    summary="Toggle an analysis in the selection",
    description="""
    Select or unselect an analysis for comparison.

    At most two analyses can be selected. Selecting a third one is rejected
    with `accepted: false` and a message; the selection is left unchanged.
    """,
)
def toggle_selection(
    analysis_id: Annotated[str, Path(description="Identifier of the analysis")],
    history: HistoryStoreDep,
) -> SelectionResponse:
    return to_selection_response(history.select_for_comparison(analysis_id))


@router.post(
    "",
    response_model=SelectionResponse,
    summary="Compare the selected analyses",
)
def start_comparison(history: HistoryStoreDep) -> SelectionResponse:
    """Hand the two selected analyses to the comparison view and clear the selection."""
    return to_selection_response(history.start_comparison())


@router.get(
    "",
    response_model=ComparisonResponse,
    summary="Get the pending comparison",
    responses={409: {"description": "No pair of analyses is pending"}},
)
def get_comparison(history: HistoryStoreDep) -> ComparisonResponse:
    """Return the pair handed to the comparison view. It can be read once."""
    first, second = history.take_comparison()
    return ComparisonResponse(analyses=[to_response(first), to_response(second)])
