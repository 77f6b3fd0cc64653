"""
Pytest Configuration and Shared Fixtures for PageLoad Tests.

This module provides fixtures and configuration for all tests, supporting:
- Async test execution with pytest-asyncio
- A manual clock for deterministic cache / rate-limit expiry
- PageSpeed Insights payload builders matching the provider's v5 shape
- A mock upstream built on httpx.MockTransport that records every request
- Orchestrator factories with isolated cache and limiter instances
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from pageload.core.config import Settings
from pageload.services.cache import ResponseCache
from pageload.services.orchestrator import PageLoadOrchestrator
from pageload.services.rate_limit import RateLimiter
from pageload.services.upstream import PageSpeedClient, build_client


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - scenario: End-to-end behaviour scenarios (healthy page, slow origin, ...)
    """
    config.addinivalue_line(
        'markers',
        'scenario: marks end-to-end behaviour scenarios'
    )


# ============================================================
# CLOCK
# ============================================================

class ManualClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# ============================================================
# SETTINGS
# ============================================================

def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    values: Dict[str, Any] = {
        "psi_api_key": None,
        "psi_endpoint": "https://psi.test/runPagespeed",
        "upstream_timeout_seconds": 2.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


# ============================================================
# PAGESPEED PAYLOAD BUILDERS
# ============================================================

def lab_audit(
    numeric_value: Optional[float],
    display_value: str = "",
    title: str = "",
    score: Optional[float] = None,
) -> Dict[str, Any]:
    audit: Dict[str, Any] = {"title": title, "displayValue": display_value, "score": score}
    if numeric_value is not None:
        audit["numericValue"] = numeric_value
    return audit


def opportunity_audit(
    savings_ms: Optional[float],
    title: str = "Opportunity",
    numeric_value: Optional[float] = None,
) -> Dict[str, Any]:
    details: Dict[str, Any] = {"type": "opportunity"}
    if savings_ms is not None:
        details["overallSavingsMs"] = savings_ms
    audit: Dict[str, Any] = {
        "title": title,
        "description": f"{title} description",
        "displayValue": f"Potential savings of {savings_ms} ms" if savings_ms is not None else "",
        "details": details,
    }
    if numeric_value is not None:
        audit["numericValue"] = numeric_value
    return audit


def build_payload(
    perf_score: Optional[float] = 0.9,
    audits: Optional[Dict[str, Any]] = None,
    field_metrics: Optional[Dict[str, Any]] = None,
    overall_category: Optional[str] = None,
) -> Dict[str, Any]:
    """Assemble a PageSpeed Insights v5 response body."""
    lighthouse: Dict[str, Any] = {"audits": audits or {}}
    if perf_score is not None:
        lighthouse["categories"] = {"performance": {"score": perf_score}}

    payload: Dict[str, Any] = {"id": "https://example.com/", "lighthouseResult": lighthouse}
    if field_metrics is not None or overall_category is not None:
        payload["loadingExperience"] = {
            "metrics": field_metrics or {},
            "overall_category": overall_category,
        }
    return payload


@pytest.fixture
def healthy_payload() -> Dict[str, Any]:
    return build_payload(
        perf_score=0.95,
        audits={
            "server-response-time": lab_audit(100, "Root document took 100 ms"),
            "largest-contentful-paint": lab_audit(800, "0.8 s"),
            "total-blocking-time": lab_audit(20, "20 ms"),
            "cumulative-layout-shift": lab_audit(0.01, "0.01"),
            "speed-index": lab_audit(1100, "1.1 s"),
        },
    )


@pytest.fixture
def slow_payload() -> Dict[str, Any]:
    return build_payload(
        perf_score=0.31,
        audits={
            "server-response-time": lab_audit(1900, "Root document took 1,900 ms"),
            "largest-contentful-paint": lab_audit(5200, "5.2 s"),
            "interaction-to-next-paint": lab_audit(350, "350 ms"),
            "total-blocking-time": lab_audit(900, "900 ms"),
            "cumulative-layout-shift": lab_audit(0.3, "0.3"),
            "speed-index": lab_audit(6100, "6.1 s"),
            "render-blocking-resources": opportunity_audit(820, "Eliminate render-blocking resources"),
            "unused-javascript": opportunity_audit(450, "Reduce unused JavaScript"),
            "modern-image-formats": opportunity_audit(1300, "Serve images in next-gen formats"),
            "uses-long-cache-ttl": opportunity_audit(None, "Serve static assets with an efficient cache policy", 640),
            "third-party-summary": opportunity_audit(1100, "Reduce the impact of third-party code"),
        },
        field_metrics={
            "LARGEST_CONTENTFUL_PAINT_MS": {"percentile": 4100, "category": "SLOW"},
            "EXPERIMENTAL_TIME_TO_FIRST_BYTE": {"percentile": 2100, "category": "SLOW"},
        },
        overall_category="SLOW",
    )


# ============================================================
# MOCK UPSTREAM
# ============================================================

class MockUpstream:
    """
    Scriptable PageSpeed Insights stand-in.

    responses maps strategy -> (status, json body) or a callable returning an
    httpx.Response. Every request is recorded in `requests`.
    """

    def __init__(self):
        self.responses: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []

    def respond(self, strategy: str, status: int, body: Any) -> None:
        self.responses[strategy] = (status, body)

    def calls_for(self, strategy: str) -> int:
        return sum(1 for r in self.requests if r.url.params.get("strategy") == strategy)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        strategy = request.url.params.get("strategy", "mobile")
        scripted = self.responses.get(strategy)
        if scripted is None:
            return httpx.Response(404, json={"error": {"message": f"no script for {strategy}"}})
        if callable(scripted):
            return scripted(request)
        status, body = scripted
        if isinstance(body, (dict, list)):
            return httpx.Response(status, content=json.dumps(body), headers={"content-type": "application/json"})
        return httpx.Response(status, text=str(body), headers={"content-type": "text/html"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()


# ============================================================
# ORCHESTRATOR FACTORY
# ============================================================

@pytest.fixture
def orchestrator_factory(
    upstream: MockUpstream,
    clock: ManualClock,
) -> Callable[..., PageLoadOrchestrator]:
    """
    Build an orchestrator wired to the mock upstream and manual clock.

    Each call gets its own cache and limiter, so tests never share state.
    """

    def factory(**setting_overrides: Any) -> PageLoadOrchestrator:
        settings = make_settings(**setting_overrides)
        client = PageSpeedClient(build_client(settings, transport=upstream.transport), settings)
        return PageLoadOrchestrator(
            client=client,
            cache=ResponseCache(
                success_ttl=settings.cache_success_ttl_seconds,
                failure_ttl=settings.cache_failure_ttl_seconds,
                max_entries=settings.cache_max_entries,
                clock=clock,
            ),
            rate_limiter=RateLimiter(
                max_requests=settings.rate_limit_max_requests,
                window_seconds=settings.rate_limit_window_seconds,
                prune_threshold=settings.rate_limit_prune_threshold,
                clock=clock,
            ),
            settings=settings,
        )

    return factory
