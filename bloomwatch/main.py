"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from bloomwatch.config import settings
from bloomwatch.api.rate_limit import limiter
from bloomwatch.middleware.error_handler import ErrorHandlerMiddleware
from bloomwatch.api.v1.routers import analyses, comparison, maps

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Logs the resolved analysis configuration at startup and closes the
    shared HTTP clients on shutdown.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Analysis config: lookback_months={settings.analysis_lookback_months}, "
                f"interval={settings.aggregation_interval}, "
                f"geodesic_area={settings.use_geodesic_area}")
    if not (settings.sentinel_client_id and settings.sentinel_client_secret):
        logger.warning("Imagery credentials are not configured; analyses will be refused")
    logger.info(f"History file: {settings.storage_path}")
    logger.info(f"Rate limit: {settings.rate_limit_requests} analyses/minute")

    yield

    # Shutdown
    from bloomwatch.infrastructure.geocoding import get_geocoder
    from bloomwatch.infrastructure.sentinel_client import get_sentinel_client
    from bloomwatch.infrastructure.token_broker import get_token_broker
    logger.info("Shutting down application...")
    await get_token_broker().close()
    await get_sentinel_client().close()
    await get_geocoder().close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Vegetation analysis API for regions drawn on a map

    Draw a polygon and get monthly Sentinel-2 vegetation indices for it.

    ## Features

    - **Area**: Geodesic area of the drawn region in hectares
    - **Time series**: Monthly NDVI, NDWI and NDRE means with cloud coverage
      and the experimental fitness/pressure index (FPI)
    - **History**: Saved analyses with CSV export, revisits and side-by-side
      comparison of two analyses
    - **Map helpers**: Named points of interest and a yearly NDVI overlay
    - **Robust Error Handling**: Token endpoint failover and retries for
      transient network failures
    - **Rate Limiting**: Protects the imagery quota from abuse
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(analyses.router, prefix="/api/v1")
app.include_router(comparison.router, prefix="/api/v1")
app.include_router(maps.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """Service name, version and where to find the API docs."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": app.docs_url,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Reports whether imagery credentials are configured.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "imagery_configured": bool(settings.sentinel_client_id and settings.sentinel_client_secret),
    }
