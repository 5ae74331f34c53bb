"""
API endpoint constants and configuration.

This module contains the imagery service endpoint paths, request constants and
the default evalscripts. Centralizing these values makes it easy to swap out
endpoints or update API versions.
"""


class SentinelHubEndpoints:
    """Sentinel Hub / Copernicus Data Space endpoint paths."""

    STATISTICS = "/api/v1/statistics"
    PROCESS = "/api/v1/process"
    WMS = "/ogc/wms/{instance_id}"

    @classmethod
    def wms(cls, instance_id: str) -> str:
        """
        Get the WMS endpoint for a configuration instance.

        Args:
            instance_id: Configuration instance id

        Returns:
            Formatted endpoint path
        """
        return cls.WMS.format(instance_id=instance_id)


class GeocoderEndpoints:
    """Nominatim endpoint paths."""

    REVERSE = "/reverse"


class APIConstants:
    """General API configuration constants."""

    # HTTP Headers
    CONTENT_TYPE_JSON = "application/json"
    CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"

    # Request payload constants
    CRS84 = "http://www.opengis.net/def/crs/OGC/1.3/CRS84"
    DATA_TYPE = "sentinel-2-l2a"
    MOSAICKING_ORDER = "mostRecent"
    LAND_COVER_FORMAT = "image/tiff"

    # Output band sets produced by the indices evalscript
    INDICES_OUTPUT = "indices"
    CLOUD_OUTPUT = "cloud_info"
    NDVI_BAND = "B0"
    NDWI_BAND = "B1"
    NDRE_BAND = "B2"
    CLOUD_BAND = "B0"

    # Marker stored as the crop type when a classification raster arrives
    LAND_COVER_RECEIVED = "Land cover raster received (TIFF), not decoded"


INDICES_EVALSCRIPT = """//VERSION=3
function setup() {
  return {
    input: [{ bands: ["B03", "B04", "B05", "B08", "SCL", "dataMask"] }],
    output: [
      { id: "indices", bands: 3, sampleType: "FLOAT32" },
      { id: "cloud_info", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1 }
    ]
  };
}
function isCloud(s) { return [8, 9, 10, 11].includes(s.SCL); }
function nd(a, b) { const d = a + b; return d === 0 ? NaN : (a - b) / d; }
function evaluatePixel(s) {
  const cloudy = isCloud(s);
  const valid = s.dataMask === 1 && !cloudy;
  return {
    indices: valid ? [nd(s.B08, s.B04), nd(s.B03, s.B08), nd(s.B08, s.B05)] : [NaN, NaN, NaN],
    cloud_info: [cloudy ? 1 : 0],
    dataMask: [s.dataMask]
  };
}
"""

LAND_COVER_EVALSCRIPT = """//VERSION=3
function setup() {
  return {
    input: [{ bands: ["SCL"] }],
    output: { bands: 1, sampleType: "UINT8" }
  };
}
function evaluatePixel(s) {
  return [s.SCL];
}
"""
