"""
Application service: yearly NDVI map overlay.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from bloomwatch.config import settings
from bloomwatch.domain.exceptions import ConfigurationError
from bloomwatch.infrastructure.api_constants import SentinelHubEndpoints

logger = logging.getLogger(__name__)

# Filled in by the map client for every tile
BBOX_PLACEHOLDER = "{bbox-epsg-3857}"


@dataclass
class OverlayLayer:
    """WMS tile URL template for one year, or why the overlay is off."""
    year: int
    enabled: bool
    url: Optional[str] = None
    reason: Optional[str] = None


class OverlayService:
    """Builds the NDVI WMS overlay; without an instance id the overlay is disabled."""

    def __init__(
        self,
        instance_id: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.instance_id = instance_id if instance_id is not None else settings.sentinel_instance_id
        self.base_url = (base_url or settings.sentinel_base_url).rstrip("/")

    def ndvi_url(self, year: int) -> str:
        """
        WMS GetMap URL template for the NDVI layer of a year.

        Raises:
            ConfigurationError: If no instance id is configured
        """
        if not self.instance_id:
            raise ConfigurationError(
                "sentinel_instance_id is not configured, NDVI overlay disabled",
                user_message="The NDVI overlay is not configured",
            )
        time_range = f"{year}-01-01T00:00:00Z/{year}-12-31T23:59:59Z"
        return (
            f"{self.base_url}{SentinelHubEndpoints.wms(self.instance_id)}"
            "?SERVICE=WMS&VERSION=1.3.0&REQUEST=GetMap&FORMAT=image/png"
            "&TRANSPARENT=true&LAYERS=NDVI&CRS=EPSG:3857"
            f"&TIME={time_range}&WIDTH=256&HEIGHT=256&BBOX={BBOX_PLACEHOLDER}"
        )

    def ndvi_layer(self, year: int) -> OverlayLayer:
        """The NDVI overlay for a year; disabled rather than failing when unconfigured."""
        try:
            url = self.ndvi_url(year)
        except ConfigurationError as e:
            logger.error(e.message)
            return OverlayLayer(year=year, enabled=False, reason=e.user_message)
        return OverlayLayer(year=year, enabled=True, url=url)
