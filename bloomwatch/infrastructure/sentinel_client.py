"""
Infrastructure layer: Sentinel Hub statistics and classification client.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from bloomwatch.config import Settings, settings
from bloomwatch.domain.exceptions import RemoteServiceError, ResponseShapeError
from bloomwatch.domain.models import (
    Geometry,
    LandCoverResult,
    RegionData,
    StatisticsResponse,
    TimeWindow,
)
from bloomwatch.infrastructure.api_constants import (
    APIConstants,
    SentinelHubEndpoints,
    INDICES_EVALSCRIPT,
    LAND_COVER_EVALSCRIPT,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisConfig:
    """Request parameters of an analysis, resolved once at startup."""

    indices_evalscript: str = INDICES_EVALSCRIPT
    land_cover_evalscript: str = LAND_COVER_EVALSCRIPT
    lookback_months: int = 12
    aggregation_interval: str = "P1M"
    land_cover_image_size: int = 512

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "AnalysisConfig":
        """Build the config, falling back to the bundled evalscripts."""
        return cls(
            indices_evalscript=source.indices_evalscript or INDICES_EVALSCRIPT,
            land_cover_evalscript=source.land_cover_evalscript or LAND_COVER_EVALSCRIPT,
            lookback_months=source.analysis_lookback_months,
            aggregation_interval=source.aggregation_interval,
            land_cover_image_size=source.land_cover_image_size,
        )

    def default_window(self) -> TimeWindow:
        return TimeWindow.trailing(self.lookback_months, self.aggregation_interval)


class SentinelHubClient:
    """
    Client for the Sentinel Hub statistics and process APIs.

    Transport failures are retried with exponential backoff; HTTP error
    statuses are not.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Request parameters (defaults to settings)
            client: HTTP client with the service base URL; created when omitted
        """
        self.config = config or AnalysisConfig.from_settings()
        self.base_url = settings.sentinel_base_url
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.http_timeout,
        )

    async def __aenter__(self) -> "SentinelHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(settings.max_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_multiplier,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        token: str,
        service: str,
        accept: str = APIConstants.CONTENT_TYPE_JSON,
    ) -> httpx.Response:
        """
        POST a JSON payload with the bearer token.

        Args:
            endpoint: API endpoint path
            payload: JSON body
            token: Bearer token
            service: Service name used in error messages
            accept: Accept header value

        Returns:
            The successful response

        Raises:
            RemoteServiceError: If the service answers with a non-success status
        """
        response = await self.client.post(
            endpoint,
            json=payload,
            headers={
                "Content-Type": APIConstants.CONTENT_TYPE_JSON,
                "Accept": accept,
                "Authorization": f"Bearer {token}",
            },
        )
        if not response.is_success:
            message = f"{service} error ({response.status_code}): {response.text}"
            raise RemoteServiceError(
                message,
                remote_status=response.status_code,
                body=response.text,
                user_message=message,
            )
        return response

    async def _send(self, endpoint: str, payload: Dict[str, Any], token: str, service: str, **kwargs):
        try:
            return await self._post(endpoint, payload, token, service, **kwargs)
        except httpx.RequestError as e:
            raise RemoteServiceError(
                f"{service} request error: {e}",
                user_message=f"{service} is unreachable",
            ) from e

    def _bounds(self, geometry: Geometry) -> Dict[str, Any]:
        return {
            "geometry": geometry.to_geojson(),
            "properties": {"crs": APIConstants.CRS84},
        }

    def _data_source(self, window: TimeWindow) -> Dict[str, Any]:
        return {
            "type": APIConstants.DATA_TYPE,
            "dataFilter": {
                "timeRange": window.time_range(),
                "mosaickingOrder": APIConstants.MOSAICKING_ORDER,
            },
        }

    def build_statistics_request(self, geometry: Geometry, window: TimeWindow) -> Dict[str, Any]:
        """Body of a statistics request for a geometry and window."""
        return {
            "input": {
                "bounds": self._bounds(geometry),
                "data": [self._data_source(window)],
            },
            "aggregation": {
                "timeRange": window.time_range(),
                "aggregationInterval": {"of": window.interval},
                "evalscript": self.config.indices_evalscript,
            },
        }

    def build_land_cover_request(self, geometry: Geometry, window: TimeWindow) -> Dict[str, Any]:
        """Body of a process request returning the classification raster."""
        size = self.config.land_cover_image_size
        return {
            "input": {
                "bounds": self._bounds(geometry),
                "data": [self._data_source(window)],
            },
            "output": {
                "width": size,
                "height": size,
                "responses": [
                    {
                        "identifier": "default",
                        "format": {"type": APIConstants.LAND_COVER_FORMAT},
                    }
                ],
            },
            "evalscript": self.config.land_cover_evalscript,
        }

    async def get_statistics(
        self,
        token: str,
        geometry: Geometry,
        window: TimeWindow,
    ) -> StatisticsResponse:
        """
        Fetch per-interval index statistics for a geometry.

        Args:
            token: Bearer token
            geometry: Region to aggregate over
            window: Time range and aggregation interval

        Returns:
            Validated StatisticsResponse

        Raises:
            RemoteServiceError: If the request fails
            ResponseShapeError: If the body does not match the expected schema
        """
        response = await self._send(
            SentinelHubEndpoints.STATISTICS,
            self.build_statistics_request(geometry, window),
            token,
            "Statistics API",
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise ResponseShapeError("Statistics API returned a non-JSON body", body=response.text) from e

        try:
            statistics = StatisticsResponse.model_validate(payload)
        except ValidationError as e:
            raise ResponseShapeError(
                f"Statistics API response has an unexpected shape: {e}",
                body=response.text,
            ) from e

        logger.info(f"Statistics received: {len(statistics.data)} intervals")
        return statistics

    async def get_land_cover(
        self,
        token: str,
        geometry: Geometry,
        window: TimeWindow,
    ) -> LandCoverResult:
        """
        Request the land cover raster for a geometry.

        The raster is acknowledged but not decoded.

        Args:
            token: Bearer token
            geometry: Region to classify
            window: Time range of the scenes to mosaic

        Returns:
            LandCoverResult marking the raster as received

        Raises:
            RemoteServiceError: If the request fails
        """
        response = await self._send(
            SentinelHubEndpoints.PROCESS,
            self.build_land_cover_request(geometry, window),
            token,
            "Classification API",
            accept=APIConstants.LAND_COVER_FORMAT,
        )
        logger.info(f"Land cover raster received ({len(response.content)} bytes)")
        return LandCoverResult(
            label=APIConstants.LAND_COVER_RECEIVED,
            content_type=response.headers.get("content-type"),
            size_bytes=len(response.content),
        )

    async def analyze_region(
        self,
        token: str,
        geometry: Geometry,
        window: Optional[TimeWindow] = None,
    ) -> RegionData:
        """
        Fetch statistics and land cover for a region concurrently.

        Both requests must succeed. The first failure is raised; the other
        request is left to finish and its result is discarded.

        Args:
            token: Bearer token
            geometry: Region drawn by the user
            window: Time window (defaults to the trailing window)

        Returns:
            RegionData with both results

        Raises:
            ValueError: If token or geometry is empty
            RemoteServiceError: If either request fails
        """
        if not token:
            raise ValueError("analyze_region: empty token")
        if geometry is None:
            raise ValueError("analyze_region: empty geometry")

        window = window or self.config.default_window()
        statistics, land_cover = await asyncio.gather(
            self.get_statistics(token, geometry, window),
            self.get_land_cover(token, geometry, window),
        )
        return RegionData(statistics=statistics, land_cover=land_cover)


# Singleton instance
_sentinel_client: Optional[SentinelHubClient] = None


def get_sentinel_client() -> SentinelHubClient:
    """
    Get or create the singleton Sentinel Hub client.

    Returns:
        SentinelHubClient instance
    """
    global _sentinel_client
    if _sentinel_client is None:
        _sentinel_client = SentinelHubClient()
    return _sentinel_client
