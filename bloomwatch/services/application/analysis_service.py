"""
Application service: Orchestration layer for region analyses.
"""
import logging
from datetime import datetime
from typing import Optional

from bloomwatch.domain.exceptions import BloomWatchError
from bloomwatch.domain.models import AnalysisRecord, Geometry, PointOfInterest, TimeWindow
from bloomwatch.infrastructure.geocoding import ReverseGeocoder
from bloomwatch.infrastructure.sentinel_client import SentinelHubClient
from bloomwatch.infrastructure.token_broker import TokenBroker
from bloomwatch.services.application.history_store import HistoryStore
from bloomwatch.services.domain.area_calculator import AreaCalculator
from bloomwatch.services.domain.time_series_processor import TimeSeriesProcessor

logger = logging.getLogger(__name__)


class AnalysisService:
    """
    Application service for region analyses.

    Orchestrates token acquisition, data fetching, processing and persistence.
    A record reaches the history only when every step succeeded.
    """

    def __init__(
        self,
        token_broker: TokenBroker,
        sentinel_client: SentinelHubClient,
        history: HistoryStore,
        area_calculator: Optional[AreaCalculator] = None,
        processor: Optional[TimeSeriesProcessor] = None,
        geocoder: Optional[ReverseGeocoder] = None,
    ):
        """
        Initialize the service with dependencies.

        Args:
            token_broker: Access token source
            sentinel_client: Statistics and classification client
            history: History the finished records are appended to
            area_calculator: Area calculator (default instance when omitted)
            processor: Time series processor (default instance when omitted)
            geocoder: Reverse geocoder for points of interest
        """
        self.token_broker = token_broker
        self.sentinel_client = sentinel_client
        self.history = history
        self.area_calculator = area_calculator or AreaCalculator()
        self.processor = processor or TimeSeriesProcessor()
        self.geocoder = geocoder

    def resolve_window(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        interval: Optional[str] = None,
    ) -> TimeWindow:
        """Fill the parts of a requested window that were left out with the defaults."""
        default = self.sentinel_client.config.default_window()
        return TimeWindow(
            start=start or default.start,
            end=end or default.end,
            interval=interval or default.interval,
        )

    async def run_analysis(
        self,
        geometry: Geometry,
        tag: Optional[str] = None,
        window: Optional[TimeWindow] = None,
    ) -> AnalysisRecord:
        """
        Analyze a drawn region and save the result.

        This method orchestrates:
        1. Measuring the region
        2. Acquiring an access token
        3. Fetching statistics and land cover concurrently
        4. Building the analysis record
        5. Appending it to the history as the current analysis

        Args:
            geometry: Region drawn by the user
            tag: Optional user label
            window: Time window (defaults to the trailing window)

        Returns:
            The saved AnalysisRecord

        Raises:
            BloomWatchError: If any step fails; nothing is saved
        """
        area_ha = self.area_calculator.compute_area_ha(geometry)
        logger.info(f"Starting analysis of a {area_ha:.2f} ha region")

        try:
            token = await self.token_broker.acquire()
            region = await self.sentinel_client.analyze_region(token, geometry, window)
        except BloomWatchError as e:
            logger.error(f"Analysis failed: {e.message}")
            raise

        record = self.processor.to_analysis_record(
            statistics=region.statistics,
            area_ha=area_ha,
            geometry=geometry,
            land_cover=region.land_cover,
            tag=tag,
        )
        record = self.history.add_new(record)

        logger.info(
            f"Analysis {record.id} completed: {len(record.indices.ndvi)} NDVI points, "
            f"crop type '{record.crop_type}'"
        )
        return record

    async def save_point_of_interest(
        self,
        lat: float,
        lon: float,
        name: Optional[str] = None,
    ) -> PointOfInterest:
        """
        Save a marker, naming it after the place when no name is given.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            name: Optional name chosen by the user

        Returns:
            The saved PointOfInterest
        """
        if not name and self.geocoder is not None:
            name = await self.geocoder.place_name(lat, lon)
        return self.history.add_point_of_interest(name or "Point of interest", (lat, lon))
