"""
Upstream Client Service

Issues PageSpeed Insights audit requests and normalizes every outcome into a
FetchResult value. Transport failures, timeouts, non-2xx responses and
unparsable bodies never raise; they come back as FetchErr with the HTTP status
(when one was received), a human-readable error string, and an optional body
snippet.

The shared httpx.AsyncClient is created once per process by the application
lifespan and never carries cookies or caller credentials to the provider.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from pageload.core.config import Settings
from pageload.models.enums import Strategy
from pageload.models.schemas import FetchErr, FetchOk, FetchResult


logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_SECONDS = 5.0
MAX_DETAIL_CHARS = 2000
USER_AGENT = "pageload-diagnosis/1.0"
API_KEY_HEADER = "X-goog-api-key"

QueryParams = Sequence[Tuple[str, str]]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def pick_error_message(body: Any) -> Optional[str]:
    """
    Return the nested error.message string of a JSON error body, if any.

    PageSpeed Insights (and most Google APIs) answer failures with
    {"error": {"code": 429, "message": "...", ...}}.
    """
    if not isinstance(body, dict):
        return None
    err = body.get("error")
    if not isinstance(err, dict):
        return None
    message = err.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return None


def read_response_detail(response: httpx.Response) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract (message, detail) from a non-2xx response.

    detail is the trimmed body truncated to MAX_DETAIL_CHARS. message is only
    looked for when the provider declared a JSON content type.
    """
    text = response.text
    snippet = text.strip()[:MAX_DETAIL_CHARS] or None
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return pick_error_message(json.loads(text)), snippet
        except ValueError:
            pass
    return None, snippet


async def safe_json_fetch(
    client: httpx.AsyncClient,
    url: str,
    params: Optional[QueryParams] = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    headers: Optional[Mapping[str, str]] = None,
) -> FetchResult:
    """
    GET a JSON document and return it as a FetchResult.

    The whole call (connect, send, read) is bounded by timeout_seconds; when it
    elapses the request is abandoned and reported as a timeout failure.

    Args:
        client: Shared httpx client (no cookie jar is consulted or forwarded)
        url: Endpoint URL, without query string
        params: Query parameters; repeated keys are preserved
        timeout_seconds: Total time budget for the call
        headers: Extra request headers

    Returns:
        FetchOk with the decoded JSON object, or FetchErr
    """
    fetched_at = _utc_now_iso()

    try:
        response = await asyncio.wait_for(
            client.get(
                url,
                params=list(params) if params else None,
                headers=dict(headers) if headers else None,
                timeout=timeout_seconds,
            ),
            timeout=timeout_seconds,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.warning(f"Upstream request to {url} timed out after {timeout_seconds}s")
        return FetchErr(
            error=f"Upstream request timed out after {timeout_seconds:g}s",
            status=None,
            fetchedAt=fetched_at,
        )
    except httpx.HTTPError as e:
        logger.warning(f"Upstream request to {url} failed: {e!r}")
        return FetchErr(
            error=str(e) or e.__class__.__name__,
            status=None,
            fetchedAt=fetched_at,
        )

    if not response.is_success:
        message, detail = read_response_detail(response)
        suffix = f": {message}" if message else ""
        logger.warning(f"Upstream {url} returned HTTP {response.status_code}{suffix}")
        return FetchErr(
            error=f"HTTP {response.status_code}{suffix}",
            status=response.status_code,
            detail=detail,
            fetchedAt=fetched_at,
        )

    try:
        body = response.json()
    except ValueError as e:
        logger.warning(f"Upstream {url} returned an unparsable body: {e}")
        return FetchErr(
            error=f"Invalid JSON from upstream: {e}",
            status=response.status_code,
            detail=response.text.strip()[:MAX_DETAIL_CHARS] or None,
            fetchedAt=fetched_at,
        )

    if not isinstance(body, dict):
        return FetchErr(
            error="Invalid JSON from upstream: expected an object",
            status=response.status_code,
            fetchedAt=fetched_at,
        )

    return FetchOk(value=body, status=response.status_code, fetchedAt=fetched_at)


def build_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """
    Create the process-wide httpx client used for upstream audits.

    Args:
        settings: Application settings (timeouts)
        transport: Optional transport override, used by tests

    Returns:
        httpx.AsyncClient with redirects followed and no default credentials
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.default_fetch_timeout_seconds),
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        # Empty allow-list: provider cookies are never stored or sent back
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        transport=transport,
    )


class PageSpeedClient:
    """
    One audit request per (target, strategy, locale) against PageSpeed Insights.

    Holds no state besides the shared httpx client and settings, so it can be
    called concurrently for mobile and desktop.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self._client = client
        self._settings = settings

    @property
    def api_key_configured(self) -> bool:
        return self._settings.api_key_configured
    def build_params(self, target_url: str, strategy: Strategy, locale: Optional[str] = None) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = [
            ("url", target_url),
            ("strategy", strategy.value),
        ]
        for category in self._settings.psi_categories:
            params.append(("category", category))
        if locale:
            params.append(("locale", locale))
        return params

    def build_headers(self) -> Dict[str, str]:
        # The key travels as a header so it never appears in a logged request URL
        if not self.api_key_configured:
            return {}
        return {API_KEY_HEADER: self._settings.psi_api_key.strip()}

    async def run_audit(
        self,
        target_url: str,
        strategy: Strategy,
        locale: Optional[str] = None,
    ) -> FetchResult:
        """
        Run one PageSpeed Insights audit.

        Args:
            target_url: Normalized http(s) URL to audit
            strategy: mobile or desktop
            locale: Optional provider locale passed through unchanged

        Returns:
            FetchResult carrying the raw provider payload
        """
        logger.info(f"Running PageSpeed audit strategy={strategy.value} url={target_url}")
        return await safe_json_fetch(
            self._client,
            self._settings.psi_endpoint,
            params=self.build_params(target_url, strategy, locale),
            timeout_seconds=self._settings.upstream_timeout_seconds,
            headers=self.build_headers(),
        )
