"""
PageLoad Services Module

Business logic for the performance-signal aggregation and diagnosis engine.

Services:
- upstream: PageSpeed Insights client returning FetchOk / FetchErr values
- cache: Bounded TTL response cache (success and failure TTLs)
- rate_limit: Per-client window counter and client identity derivation
- extraction: Lab metrics, opportunities and field data from raw payloads
- diagnosis: Heuristic "why is this page slow" scorer
- orchestrator: Per-request composition of all of the above

extraction and diagnosis are pure and stateless. cache and rate_limit hold
process-lifetime state and are injected into the orchestrator.
"""

# =============================================================================
# Upstream Client
# =============================================================================

from pageload.services.upstream import (
    PageSpeedClient,
    build_client,
    safe_json_fetch,
)

# =============================================================================
# Response Cache
# =============================================================================

from pageload.services.cache import (
    ResponseCache,
    CacheEntry,
    make_cache_key,
)

# =============================================================================
# Rate Limiter
# =============================================================================

from pageload.services.rate_limit import (
    RateLimiter,
    RateLimitAllowed,
    RateLimitDenied,
    RateWindow,
    UNKNOWN_CLIENT_KEY,
    client_key_from_headers,
)

# =============================================================================
# Metric Extraction & Diagnosis
# =============================================================================

from pageload.services.extraction import extract
from pageload.services.diagnosis import build_diagnoses

# =============================================================================
# Orchestrator
# =============================================================================

from pageload.services.orchestrator import (
    PageLoadOrchestrator,
    PageLoadRequest,
    PageLoadOutcome,
    PageLoadValidationError,
    RateLimitExceededError,
    validate_target_url,
)


__all__ = [
    "PageSpeedClient",
    "build_client",
    "safe_json_fetch",
    "ResponseCache",
    "CacheEntry",
    "make_cache_key",
    "RateLimiter",
    "RateLimitAllowed",
    "RateLimitDenied",
    "RateWindow",
    "UNKNOWN_CLIENT_KEY",
    "client_key_from_headers",
    "extract",
    "build_diagnoses",
    "PageLoadOrchestrator",
    "PageLoadRequest",
    "PageLoadOutcome",
    "PageLoadValidationError",
    "RateLimitExceededError",
    "validate_target_url",
]
