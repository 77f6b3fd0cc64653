"""
FastAPI application entry point for the PageLoad API.

This module serves as the central orchestration file for the service. It
configures logging and CORS, registers API routers, and owns the lifecycle of
the process-wide collaborators:

- one shared httpx.AsyncClient for upstream audits
- one ResponseCache and one RateLimiter (in-memory, process lifetime)
- one PageLoadOrchestrator composed from the above, exposed via app.state

Nothing survives a restart; there is no teardown beyond closing the HTTP client.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pageload import __version__
from pageload.api import api_router
from pageload.core.config import Settings, get_settings
from pageload.services.cache import ResponseCache
from pageload.services.orchestrator import PageLoadOrchestrator
from pageload.services.rate_limit import RateLimiter
from pageload.services.upstream import PageSpeedClient, build_client


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, client: PageSpeedClient) -> PageLoadOrchestrator:
    """
    Compose the orchestrator with fresh cache and limiter state from settings.

    Args:
        settings: Application settings
        client: Upstream PageSpeed Insights client

    Returns:
        PageLoadOrchestrator ready to serve requests
    """
    cache = ResponseCache(
        success_ttl=settings.cache_success_ttl_seconds,
        failure_ttl=settings.cache_failure_ttl_seconds,
        max_entries=settings.cache_max_entries,
    )
    rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        prune_threshold=settings.rate_limit_prune_threshold,
    )
    return PageLoadOrchestrator(
        client=client,
        cache=cache,
        rate_limiter=rate_limiter,
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Create the shared upstream HTTP client
        - Build the orchestrator (cache + rate limiter) and attach it to app.state

    On shutdown:
        - Close the upstream HTTP client
    """
    logger.info("PageLoad API starting")
    http_client = build_client(settings)
    app.state.orchestrator = build_orchestrator(settings, PageSpeedClient(http_client, settings))

    if not settings.api_key_configured:
        logger.warning("PSI_API_KEY is not set; using the anonymous PageSpeed Insights quota")

    yield

    logger.info("PageLoad API shutting down")
    try:
        await http_client.aclose()
        logger.info("Upstream HTTP client closed")
    except Exception as e:
        logger.error(f"Error closing upstream HTTP client: {e}")


# Create FastAPI application
app = FastAPI(
    title="PageLoad API",
    version=__version__,
    description=(
        "Aggregates PageSpeed Insights lab, opportunity and field data for a URL "
        "and explains why the page is slow with ranked, evidence-backed diagnoses."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
)

# Register API routers
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "PageLoad API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pageload.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
