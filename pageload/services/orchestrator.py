"""
Page Load Orchestrator Service

Composes the upstream client, response cache, rate limiter, metric extractor
and diagnosis engine for one inbound request:

    validate input
      -> check cache (per strategy)
      -> rate limit (only if some strategy needs the upstream)
      -> fetch missing strategies concurrently
      -> summarize + diagnose each strategy
      -> compose response and HTTP status

Validation failures are terminal and never touch the cache, limiter or
upstream. Strategy outcomes are independent: one failing never blocks or
invalidates the other. Asking for the raw payload bypasses the cache (no read,
no write) but still counts against the rate limit.

HTTP status: 200 when at least one requested strategy succeeded, else 429 when
any failure carried an upstream 429, else 502.

The orchestrator owns no global state; the cache and limiter are injected at
construction and live for the lifetime of the process.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

from pageload.core.config import Settings
from pageload.models.enums import Strategy, StrategyChoice
from pageload.models.schemas import (
    FetchErr,
    FetchOk,
    FetchResult,
    PageLoadResponse,
    StrategyError,
    StrategyResult,
    StrategySummary,
)
from pageload.services.cache import ResponseCache, make_cache_key
from pageload.services.diagnosis import build_diagnoses
from pageload.services.extraction import extract
from pageload.services.rate_limit import RateLimitDenied, RateLimiter
from pageload.services.upstream import PageSpeedClient


logger = logging.getLogger(__name__)


SOURCE = "pagespeed-insights"
TRUST = "untrusted"
MAX_HOSTNAME_LENGTH = 253
MAX_LOCALE_LENGTH = 35
DEFAULT_PORTS = {"http": 80, "https": 443}

BASE_NOTES = [
    "Diagnoses are heuristic explanations ranked from PageSpeed Insights lab metrics, "
    "opportunity savings estimates and real-user field data.",
    "Lab metrics come from a single synthetic run; no real browser trace or request waterfall is captured.",
]
NO_KEY_NOTE = (
    "No PageSpeed Insights API key is configured; requests share the anonymous quota "
    "and may be rejected with HTTP 429."
)
QUOTA_HINT_NO_KEY = (
    "PageSpeed Insights quota exceeded for anonymous requests. "
    "Configure PSI_API_KEY to use a dedicated quota, or retry in a minute."
)
QUOTA_HINT_WITH_KEY = (
    "PageSpeed Insights quota exceeded for the configured API key. "
    "Wait for the quota to refill and retry."
)


# =============================================================================
# Errors
# =============================================================================


class PageLoadValidationError(Exception):
    """Bad inbound input. Raised before any cache, limiter or upstream work."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class RateLimitExceededError(Exception):
    """The client has used its upstream budget for the current window."""

    def __init__(self, retry_after_sec: int, client_key: str):
        super().__init__(f"Too many requests; retry after {retry_after_sec}s")
        self.retry_after_sec = retry_after_sec
        self.client_key = client_key


# =============================================================================
# Request / Outcome
# =============================================================================


@dataclass
class PageLoadRequest:
    """
    Parsed inbound request.

    Attributes:
        url: Raw target URL as supplied by the caller
        strategy: mobile, desktop or both
        locale: Optional provider locale, passed through
        include_raw: Attach the raw provider payload (forces an uncached fetch)
        include_detail: Attach upstream failure body snippets
    """
    url: str
    strategy: str = StrategyChoice.MOBILE.value
    locale: Optional[str] = None
    include_raw: bool = False
    include_detail: bool = False


@dataclass
class PageLoadOutcome:
    status_code: int
    body: PageLoadResponse


# =============================================================================
# Validation
# =============================================================================


def validate_target_url(raw: Optional[str], max_length: int = 2048) -> str:
    """
    Validate and normalize the target URL.

    Normalization lower-cases scheme and host, drops default ports and uses
    "/" for an empty path, so equivalent URLs share cache entries.

    Raises:
        PageLoadValidationError: missing, overlong or malformed URL, non-http(s)
            scheme, or empty/overlong hostname
    """
    value = (raw or "").strip()
    if not value:
        raise PageLoadValidationError("url", "missing query parameter url")
    if len(value) > max_length:
        raise PageLoadValidationError("url", f"URL must be at most {max_length} characters")

    try:
        parts = urlsplit(value)
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        raise PageLoadValidationError("url", "Invalid URL")

    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise PageLoadValidationError("url", "URL must start with http:// or https://")
    if not hostname or len(hostname) > MAX_HOSTNAME_LENGTH:
        raise PageLoadValidationError("url", "Invalid hostname")

    netloc = f"[{hostname}]" if ":" in hostname else hostname
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))


def parse_strategy(raw: Optional[str]) -> StrategyChoice:
    value = (raw or "").strip().lower() or StrategyChoice.MOBILE.value
    try:
        return StrategyChoice(value)
    except ValueError:
        raise PageLoadValidationError("strategy", "strategy must be one of mobile, desktop, both")


def parse_locale(raw: Optional[str]) -> Optional[str]:
    value = (raw or "").strip()
    if not value:
        return None
    if len(value) > MAX_LOCALE_LENGTH:
        raise PageLoadValidationError("locale", f"locale must be at most {MAX_LOCALE_LENGTH} characters")
    return value


# =============================================================================
# Summaries
# =============================================================================


def build_hint(status: Optional[int], api_key_configured: bool) -> Optional[str]:
    if status != 429:
        return None
    return QUOTA_HINT_WITH_KEY if api_key_configured else QUOTA_HINT_NO_KEY


def summarize(
    result: FetchResult,
    include_raw: bool = False,
    include_detail: bool = False,
    api_key_configured: bool = False,
) -> StrategyResult:
    """
    Turn one FetchResult into the per-strategy response object.

    Success payloads are extracted and diagnosed; failures become an inline
    StrategyError with an optional quota hint.
    """
    if isinstance(result, FetchOk):
        extracted = extract(result.value)
        return StrategySummary(
            fetchedAt=result.fetchedAt,
            status=result.status,
            perfScore=extracted.perfScore,
            metrics=extracted.metrics,
            opportunities=extracted.opportunities,
            reasons=build_diagnoses(extracted),
            field=extracted.field,
            raw=result.value if include_raw else None,
        )

    return StrategyError(
        error=result.error,
        fetchedAt=result.fetchedAt,
        status=result.status,
        detail=result.detail if include_detail else None,
        hint=build_hint(result.status, api_key_configured),
    )


def derive_status(results: Sequence[StrategyResult]) -> int:
    if any(isinstance(r, StrategySummary) for r in results):
        return 200
    if any(isinstance(r, StrategyError) and r.status == 429 for r in results):
        return 429
    return 502


def build_notes(api_key_configured: bool) -> List[str]:
    notes = list(BASE_NOTES)
    if not api_key_configured:
        notes.append(NO_KEY_NOTE)
    return notes


# =============================================================================
# Orchestrator
# =============================================================================


class PageLoadOrchestrator:
    """
    Per-request coordinator over shared, process-lifetime collaborators.

    Args:
        client: Upstream PageSpeed Insights client
        cache: Response cache shared by all requests
        rate_limiter: Per-client limiter shared by all requests
        settings: Application settings
    """

    def __init__(
        self,
        client: PageSpeedClient,
        cache: ResponseCache,
        rate_limiter: RateLimiter,
        settings: Settings,
    ):
        self.client = client
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.settings = settings

    async def handle(self, request: PageLoadRequest, client_key: str) -> PageLoadOutcome:
        """
        Run one inbound request end to end.

        Args:
            request: Parsed inbound request
            client_key: Rate-limit identity of the caller

        Returns:
            PageLoadOutcome with the HTTP status and response body

        Raises:
            PageLoadValidationError: input is invalid
            RateLimitExceededError: upstream work is needed and the client is over budget
        """
        target_url = validate_target_url(request.url, self.settings.max_url_length)
        choice = parse_strategy(request.strategy)
        locale = parse_locale(request.locale)
        strategies = choice.expand()
        use_cache = not request.include_raw

        results: Dict[Strategy, FetchResult] = {}
        if use_cache:
            for strategy in strategies:
                cached = self.cache.get(make_cache_key(strategy, locale, target_url))
                if cached is not None:
                    logger.debug(f"Cache hit strategy={strategy.value} url={target_url}")
                    results[strategy] = cached

        missing = [s for s in strategies if s not in results]
        if missing:
            decision = self.rate_limiter.check(client_key)
            if isinstance(decision, RateLimitDenied):
                raise RateLimitExceededError(decision.retry_after_sec, client_key)

            fetched = await asyncio.gather(
                *(self._fetch_one(target_url, s, locale) for s in missing)
            )
            for strategy, result in zip(missing, fetched):
                results[strategy] = result
                if use_cache:
                    self.cache.set(make_cache_key(strategy, locale, target_url), result)

        api_key_configured = self.client.api_key_configured
        summaries: Dict[Strategy, StrategyResult] = {
            strategy: summarize(
                results[strategy],
                include_raw=request.include_raw,
                include_detail=request.include_detail,
                api_key_configured=api_key_configured,
            )
            for strategy in strategies
        }

        ordered = [summaries[s] for s in strategies]
        status_code = derive_status(ordered)

        body = PageLoadResponse(
            url=target_url,
            source=SOURCE,
            apiKeyConfigured=api_key_configured,
            notes=build_notes(api_key_configured),
            mobile=summaries.get(Strategy.MOBILE),
            desktop=summaries.get(Strategy.DESKTOP),
            trust=TRUST,
        )
        if status_code != 200:
            first_failure = next(r for r in ordered if isinstance(r, StrategyError))
            body.error = first_failure.error
            body.hint = first_failure.hint

        logger.info(
            f"PageLoad url={target_url} strategies={[s.value for s in strategies]} "
            f"fetched={[s.value for s in missing]} status={status_code}"
        )
        return PageLoadOutcome(status_code=status_code, body=body)

    async def _fetch_one(self, target_url: str, strategy: Strategy, locale: Optional[str]) -> FetchResult:
        try:
            return await self.client.run_audit(target_url, strategy, locale)
        except Exception as e:
            # A crash in one strategy must not fail its sibling
            logger.exception(f"Unexpected error auditing {target_url} ({strategy.value})")
            return FetchErr(
                error=f"Unexpected upstream client error: {e}",
                status=None,
                fetchedAt=datetime.now(timezone.utc).isoformat(),
            )
