"""
Application configuration using Pydantic settings.
"""
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Sentinel Hub credentials
    sentinel_client_id: str = Field(
        default="",
        description="OAuth client id for the imagery service"
    )
    sentinel_client_secret: str = Field(
        default="",
        description="OAuth client secret for the imagery service"
    )
    sentinel_instance_id: Optional[str] = Field(
        default=None,
        description="WMS configuration instance id (enables the NDVI overlay)"
    )

    # Remote endpoints
    token_endpoints: list[str] = Field(
        default=[
            "https://identity.dataspace.copernicus.eu/auth/realms/CDSE/protocol/openid-connect/token",
            "https://services.sentinel-hub.com/oauth/token",
        ],
        description="Token endpoints, tried in order"
    )
    sentinel_base_url: str = Field(
        default="https://sh.dataspace.copernicus.eu",
        description="Base URL for the statistics, process and WMS APIs"
    )
    geocoder_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        description="Base URL for reverse geocoding"
    )
    geocoder_user_agent: str = Field(
        default="bloomwatch/1.0",
        description="User-Agent sent to the geocoder"
    )

    # Analysis defaults
    analysis_lookback_months: int = Field(
        default=12,
        description="Length of the trailing analysis window in months"
    )
    aggregation_interval: str = Field(
        default="P1M",
        description="ISO-8601 duration of each aggregation interval"
    )
    indices_evalscript: Optional[str] = Field(
        default=None,
        description="Override for the indices evalscript"
    )
    land_cover_evalscript: Optional[str] = Field(
        default=None,
        description="Override for the land cover evalscript"
    )
    land_cover_image_size: int = Field(
        default=512,
        description="Width and height in pixels of the land cover raster"
    )
    use_geodesic_area: bool = Field(
        default=True,
        description="Compute areas on the WGS84 ellipsoid"
    )

    # Token policy (seconds)
    token_default_ttl: int = Field(
        default=3600,
        description="TTL assumed when the token endpoint omits expires_in"
    )
    token_safety_margin: int = Field(
        default=30,
        description="Seconds subtracted from the server TTL"
    )
    token_min_ttl: int = Field(
        default=30,
        description="Minimum number of seconds a token is cached"
    )

    # HTTP / retry configuration
    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for every outbound request"
    )
    max_retry_attempts: int = Field(
        default=3,
        description="Maximum number of attempts on transport errors"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Multiplier for exponential backoff"
    )
    retry_min_wait: int = Field(
        default=1,
        description="Minimum wait time in seconds between retries"
    )
    retry_max_wait: int = Field(
        default=10,
        description="Maximum wait time in seconds between retries"
    )

    # Storage
    storage_path: Optional[str] = Field(
        default="data/bloomwatch_store.json",
        description="JSON document holding history; unset keeps it in memory"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=30,
        description="Maximum analyses per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="BloomWatch Analysis API",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
