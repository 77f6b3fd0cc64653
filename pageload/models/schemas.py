"""
Pydantic request/response models for the PageLoad diagnosis service.

This module provides type-safe data validation and serialization for the
upstream fetch results, the metric shapes extracted from PageSpeed Insights
payloads, the diagnosis objects produced by the heuristic scorer, and the
JSON envelope returned by GET /api/pageload.

Field names are camelCase because they are the public JSON contract consumed
by the browser client.

Tagged variants:
- FetchResult is FetchOk | FetchErr, discriminated by `kind`.
- StrategyResult is StrategySummary | StrategyError, discriminated by `ok`.

All models use Pydantic v2 syntax.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_serializer

from pageload.models.enums import ExpectedImpact, Severity


# =============================================================================
# Upstream Fetch Results
# =============================================================================


class FetchOk(BaseModel):
    """
    Successful upstream JSON fetch.

    Immutable once constructed; stored verbatim in the response cache.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["ok"] = "ok"
    value: Dict[str, Any] = Field(..., description="Decoded JSON body")
    status: int = Field(..., description="HTTP status code of the upstream response")
    fetchedAt: str = Field(..., description="ISO-8601 UTC timestamp of the fetch")


class FetchErr(BaseModel):
    """
    Failed upstream fetch (transport error, timeout, non-2xx, or unparsable body).
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    error: str = Field(..., description="Human-readable error message")
    status: Optional[int] = Field(default=None, description="HTTP status when one was received")
    detail: Optional[str] = Field(default=None, description="Response body snippet (<= 2000 chars)")
    fetchedAt: str = Field(..., description="ISO-8601 UTC timestamp of the fetch")


FetchResult = Annotated[Union[FetchOk, FetchErr], Field(discriminator="kind")]


# =============================================================================
# Extracted Metrics
# =============================================================================


class Metric(BaseModel):
    """One named Lighthouse lab audit."""
    id: str
    title: str = ""
    displayValue: str = ""
    numericValue: Optional[float] = None
    score: Optional[float] = None


class Opportunity(BaseModel):
    """
    Lighthouse audit flagged with details.type == "opportunity".

    savingsMs falls back to the audit's numericValue when no explicit
    overallSavingsMs figure is present.
    """
    id: str
    title: str
    description: str = ""
    savingsMs: Optional[float] = None
    displayValue: str = ""


class FieldMetric(BaseModel):
    """One real-user (CrUX) metric: percentile and/or category."""
    id: str
    percentile: Optional[float] = None
    category: Optional[str] = None


class FieldData(BaseModel):
    """Real-user percentile data for the target, independent of the lab run."""
    overallCategory: Optional[str] = None
    metrics: List[FieldMetric] = Field(default_factory=list)


class ExtractedMetrics(BaseModel):
    """Everything the diagnosis engine consumes from one PageSpeed payload."""
    perfScore: Optional[float] = None
    metrics: List[Metric] = Field(default_factory=list)
    opportunities: List[Opportunity] = Field(default_factory=list)
    field: Optional[FieldData] = None


# =============================================================================
# Diagnoses
# =============================================================================


class Diagnosis(BaseModel):
    """
    Ranked, evidence-backed explanation of a likely bottleneck.

    Never emitted without at least one evidence string and one fix.
    """
    id: str
    title: str
    severity: Severity
    expectedImpact: ExpectedImpact
    evidence: List[str] = Field(..., min_length=1, max_length=3)
    recommendedFixes: List[str] = Field(..., min_length=1, max_length=3)


# =============================================================================
# Per-Strategy Results
# =============================================================================


class StrategySummary(BaseModel):
    """Successful audit for one strategy, summarized and diagnosed."""
    ok: Literal[True] = True
    fetchedAt: str
    status: int
    perfScore: Optional[float] = None
    metrics: List[Metric] = Field(default_factory=list)
    opportunities: List[Opportunity] = Field(default_factory=list)
    reasons: List[Diagnosis] = Field(default_factory=list, description="Top diagnoses, best first")
    field: Optional[FieldData] = None
    raw: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Unprocessed provider payload, only when requested"
    )

    @model_serializer(mode="wrap")
    def _omit_unrequested_raw(self, handler):
        data = handler(self)
        if self.raw is None:
            data.pop("raw", None)
        return data


class StrategyError(BaseModel):
    """Failed audit for one strategy, embedded inline in the response."""
    ok: Literal[False] = False
    error: str
    fetchedAt: str
    status: Optional[int] = None
    detail: Optional[str] = Field(default=None, description="Only when failure detail was requested")
    hint: Optional[str] = None


StrategyResult = Union[StrategySummary, StrategyError]


# =============================================================================
# API Envelopes
# =============================================================================


class PageLoadResponse(BaseModel):
    """
    Response body of GET /api/pageload.

    The strategy that was not requested is null.
    """
    url: str = Field(..., description="Normalized target URL")
    source: str = "pagespeed-insights"
    apiKeyConfigured: bool = False
    notes: List[str] = Field(default_factory=list)
    mobile: Optional[StrategyResult] = None
    desktop: Optional[StrategyResult] = None
    trust: str = Field(default="untrusted", description="Trust classification of upstream-derived content")
    error: Optional[str] = Field(default=None, description="First strategy failure when every strategy failed")
    hint: Optional[str] = None


class RateLimitResponse(BaseModel):
    """Body of a 429 produced by the local rate limiter."""
    error: str
    retryAfterSec: int = Field(..., ge=1)


class ErrorResponse(BaseModel):
    """Body of a 400 produced by input validation."""
    error: str
    field: Optional[str] = None
