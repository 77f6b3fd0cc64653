"""
FastAPI router module for page load diagnosis.

Implements GET /api/pageload: audits a URL with PageSpeed Insights for the
requested strategy (mobile, desktop or both) and returns per-strategy
summaries with ranked "why is this page slow" diagnoses.

Query Parameters:
- url: Target http(s) URL (required)
- strategy: mobile | desktop | both (default mobile)
- locale: Provider locale, passed through (optional)
- raw: Include the unprocessed provider payload; bypasses the cache
- detail: Include upstream failure body snippets

Status Codes:
- 200: At least one requested strategy succeeded
- 400: Invalid input ({error, field})
- 429: Local rate limit ({error, retryAfterSec} + Retry-After header), or every
       strategy failed with an upstream 429 (full envelope)
- 502: Every strategy failed for another reason (full envelope)
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from pageload.core.dependencies import ClientKeyDep, OrchestratorDep
from pageload.models.schemas import ErrorResponse, PageLoadResponse, RateLimitResponse
from pageload.services.orchestrator import (
    PageLoadRequest,
    PageLoadValidationError,
    RateLimitExceededError,
)


logger = logging.getLogger(__name__)


# Responses are per-caller and time-sensitive; never let a proxy cache them
NO_STORE_HEADERS = {"Cache-Control": "no-store"}


# =============================================================================
# Router Definition
# =============================================================================

router = APIRouter()


@router.get(
    "/pageload",
    response_model=PageLoadResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        429: {"model": RateLimitResponse, "description": "Rate limited or upstream quota exhausted"},
        502: {"model": PageLoadResponse, "description": "Every requested strategy failed upstream"},
    },
)
async def get_pageload(
    orchestrator: OrchestratorDep,
    client_key: ClientKeyDep,
    url: Optional[str] = Query(default=None, description="Target http(s) URL"),
    strategy: str = Query(default="mobile", description="mobile, desktop or both"),
    locale: Optional[str] = Query(default=None, description="Provider locale, e.g. en or de-DE"),
    raw: bool = Query(default=False, description="Include the raw provider payload (uncached)"),
    detail: bool = Query(default=False, description="Include upstream failure detail text"),
) -> JSONResponse:
    """
    Audit a page and explain why it is slow.

    Args:
        orchestrator: Process-wide orchestrator (injected)
        client_key: Caller's rate-limit identity (injected)
        url: Target URL
        strategy: Strategy selection
        locale: Optional provider locale
        raw: Attach raw payloads
        detail: Attach failure detail snippets

    Returns:
        JSONResponse whose status is derived from the strategy outcomes
    """
    request = PageLoadRequest(
        url=url or "",
        strategy=strategy,
        locale=locale,
        include_raw=raw,
        include_detail=detail,
    )

    try:
        outcome = await orchestrator.handle(request, client_key)
    except PageLoadValidationError as e:
        logger.info(f"Rejected pageload request ({e.field}): {e.message}")
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=e.message, field=e.field).model_dump(),
            headers=NO_STORE_HEADERS,
        )
    except RateLimitExceededError as e:
        return JSONResponse(
            status_code=429,
            content=RateLimitResponse(
                error="Too many requests. Please wait before running another audit.",
                retryAfterSec=e.retry_after_sec,
            ).model_dump(),
            headers={**NO_STORE_HEADERS, "Retry-After": str(e.retry_after_sec)},
        )
    except Exception as e:
        logger.exception("Error handling pageload request")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to analyze page load: {str(e)}"
        )

    return JSONResponse(
        status_code=outcome.status_code,
        content=outcome.body.model_dump(mode="json"),
        headers=NO_STORE_HEADERS,
    )
