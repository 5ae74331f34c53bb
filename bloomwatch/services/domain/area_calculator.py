"""
Domain service: area of a drawn shape in hectares.

Areas are computed on the WGS84 ellipsoid with pyproj. When no geodesic
calculator is available, or it fails, a planar shoelace area over the raw
longitude/latitude values is returned instead. That fallback is in square
degrees, not hectares, and is only meant to keep the pipeline running.
"""
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from pyproj import Geod
from pyproj.exceptions import GeodError
from shapely.geometry import Polygon

from bloomwatch.config import settings
from bloomwatch.domain.exceptions import GeometryError
from bloomwatch.domain.models import Geometry

logger = logging.getLogger(__name__)

SQUARE_METERS_PER_HECTARE = 10_000.0


@dataclass
class AreaMeasurement:
    """An area and whether it was measured geodesically."""
    hectares: float
    geodesic: bool

    @property
    def approximate(self) -> bool:
        return not self.geodesic


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def extract_ring(shape: Any) -> list[tuple[float, float]]:
    """
    Get the boundary ring of a shape as (lon, lat) pairs.

    Accepts a Geometry, a GeoJSON geometry or feature mapping, a list of rings,
    or a bare ring.

    Raises:
        GeometryError: If no ring of at least 3 finite positions can be read
    """
    if isinstance(shape, Geometry):
        return shape.exterior

    if isinstance(shape, Mapping):
        if "geometry" in shape:
            return extract_ring(shape["geometry"])
        coordinates = shape.get("coordinates")
        if not coordinates:
            raise GeometryError("Geometry has no coordinates")
        return extract_ring(coordinates[0])

    if not _is_sequence(shape) or not shape:
        raise GeometryError(f"Cannot read a ring from {type(shape).__name__}")

    # A list of rings rather than a ring
    first = shape[0]
    if _is_sequence(first) and first and _is_sequence(first[0]):
        return extract_ring(first)

    ring = []
    for position in shape:
        try:
            lon, lat = float(position[0]), float(position[1])
        except (TypeError, ValueError, IndexError) as e:
            raise GeometryError(f"Invalid position {position!r}") from e
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise GeometryError(f"Non-finite position {position!r}")
        ring.append((lon, lat))

    if len(set(ring)) < 3:
        raise GeometryError("A ring needs at least 3 distinct positions")
    return ring


class AreaCalculator:
    """
    Measures drawn shapes.

    Malformed shapes measure 0 rather than raising.
    """

    def __init__(
        self,
        geod: Optional[Geod] = None,
        use_geodesic: Optional[bool] = None,
    ):
        """
        Initialize the calculator.

        Args:
            geod: Geodesic calculator (defaults to the WGS84 ellipsoid)
            use_geodesic: Disable to force the planar fallback (defaults to settings)
        """
        if use_geodesic is None:
            use_geodesic = settings.use_geodesic_area
        self.geod = (geod or Geod(ellps="WGS84")) if use_geodesic else None

    def measure(self, shape: Any) -> AreaMeasurement:
        """
        Measure a shape.

        Args:
            shape: Polygon or rectangle boundary in [lon, lat] order

        Returns:
            AreaMeasurement; hectares is 0 for malformed shapes
        """
        try:
            polygon = Polygon(extract_ring(shape))
        except (GeometryError, ValueError) as e:
            logger.warning(f"Malformed geometry, area defaults to 0: {e}")
            return AreaMeasurement(hectares=0.0, geodesic=False)

        if self.geod is not None:
            try:
                area_m2, _ = self.geod.geometry_area_perimeter(polygon)
            except (GeodError, ValueError) as e:
                logger.warning(f"Geodesic area failed: {e}")
            else:
                if math.isfinite(area_m2):
                    return AreaMeasurement(
                        hectares=abs(area_m2) / SQUARE_METERS_PER_HECTARE,
                        geodesic=True,
                    )

        planar = polygon.area
        if not math.isfinite(planar):
            return AreaMeasurement(hectares=0.0, geodesic=False)
        logger.warning(
            "Using approximate planar area (square degrees, not geodesic). "
            "Enable use_geodesic_area for real hectares."
        )
        return AreaMeasurement(hectares=abs(planar), geodesic=False)

    def compute_area_ha(self, shape: Any) -> float:
        """
        Area of a shape in hectares.

        Args:
            shape: Polygon or rectangle boundary in [lon, lat] order

        Returns:
            Area in hectares (approximate when no geodesic calculator is used),
            0 for malformed shapes
        """
        return self.measure(shape).hectares
