"""
Dependency injection for FastAPI.
"""
from typing import Annotated
from fastapi import Depends

from bloomwatch.infrastructure.geocoding import ReverseGeocoder, get_geocoder
from bloomwatch.infrastructure.local_store import LocalStore, get_local_store
from bloomwatch.infrastructure.sentinel_client import SentinelHubClient, get_sentinel_client
from bloomwatch.infrastructure.token_broker import TokenBroker, get_token_broker
from bloomwatch.services.application.analysis_service import AnalysisService
from bloomwatch.services.application.history_store import HistoryStore
from bloomwatch.services.application.overlay_service import OverlayService
from bloomwatch.services.domain.area_calculator import AreaCalculator


def get_area_calculator() -> AreaCalculator:
    """
    Dependency factory for AreaCalculator.

    Returns:
        AreaCalculator instance
    """
    return AreaCalculator()


def get_history_store(
    store: Annotated[LocalStore, Depends(get_local_store)],
) -> HistoryStore:
    """
    Dependency factory for HistoryStore.

    Args:
        store: Local key-value store (injected)

    Returns:
        HistoryStore instance
    """
    return HistoryStore(store)


def get_overlay_service() -> OverlayService:
    return OverlayService()


def get_analysis_service(
    token_broker: Annotated[TokenBroker, Depends(get_token_broker)],
    sentinel_client: Annotated[SentinelHubClient, Depends(get_sentinel_client)],
    history: Annotated[HistoryStore, Depends(get_history_store)],
    area_calculator: Annotated[AreaCalculator, Depends(get_area_calculator)],
    geocoder: Annotated[ReverseGeocoder, Depends(get_geocoder)],
) -> AnalysisService:
    """
    Dependency factory for AnalysisService.

    Args:
        token_broker: Access token source (injected)
        sentinel_client: Imagery client (injected)
        history: Analysis history (injected)
        area_calculator: Area calculator (injected)
        geocoder: Reverse geocoder (injected)

    Returns:
        AnalysisService instance
    """
    return AnalysisService(
        token_broker=token_broker,
        sentinel_client=sentinel_client,
        history=history,
        area_calculator=area_calculator,
        geocoder=geocoder,
    )


# Type aliases for cleaner route signatures
AnalysisServiceDep = Annotated[AnalysisService, Depends(get_analysis_service)]
HistoryStoreDep = Annotated[HistoryStore, Depends(get_history_store)]
AreaCalculatorDep = Annotated[AreaCalculator, Depends(get_area_calculator)]
OverlayServiceDep = Annotated[OverlayService, Depends(get_overlay_service)]
