"""
Diagnosis Engine Service

Turns extracted lab metrics, opportunity savings and field data into at most
five ranked "why is this page slow" diagnoses.

Each rule is evaluated independently. A rule that fires still produces nothing
unless it can cite at least one evidence string and one fix, so partially
missing inputs never yield vacuous explanations. Every fired rule is ranked by

    severity_weight(severity) * 100 + boost

where severity_weight is high=3, medium=2, low=1 and boost is a capped,
rule-specific magnitude term. Candidates are sorted by score (stable, so ties
keep rule order) and the top five are kept.

Rule order: origin-latency, lcp-render-blocking, js-main-thread,
image-payload, cache-policy, layout-instability, third-party-overhead, then
mixed-bottlenecks as a fallback when nothing else fired and the performance
score is below 0.75.

The thresholds and boost divisors are tuning constants; their relative
ordering is what the ranking depends on.

Diagnosis generation never raises.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from pageload.models.enums import ExpectedImpact, FieldCategory, Severity
from pageload.models.schemas import (
    Diagnosis,
    ExtractedMetrics,
    FieldData,
    Metric,
    Opportunity,
)


MAX_DIAGNOSES = 5
MAX_LIST_ITEMS = 3
MIXED_BOTTLENECK_SCORE_THRESHOLD = 0.75

# =============================================================================
# CrUX metric ids, in lookup priority order
# =============================================================================

FIELD_TTFB_IDS = ["EXPERIMENTAL_TIME_TO_FIRST_BYTE", "TIME_TO_FIRST_BYTE"]
FIELD_LCP_IDS = ["LARGEST_CONTENTFUL_PAINT_MS"]
FIELD_INP_IDS = ["INTERACTION_TO_NEXT_PAINT"]
FIELD_CLS_IDS = ["CUMULATIVE_LAYOUT_SHIFT_SCORE"]

# =============================================================================
# Opportunity groupings
# =============================================================================

RENDER_BLOCKING_IDS = ["render-blocking-resources"]
JS_OPPORTUNITY_IDS = [
    "unused-javascript",
    "legacy-javascript",
    "bootup-time",
    "mainthread-work-breakdown",
]
IMAGE_OPPORTUNITY_IDS = [
    "modern-image-formats",
    "uses-responsive-images",
    "offscreen-images",
    "efficiently-encode-images",
]
CACHE_OPPORTUNITY_IDS = ["uses-long-cache-ttl"]
THIRD_PARTY_IDS = ["third-party-summary"]

_POOR_CATEGORIES = {"poor", "slow"}
_NEEDS_IMPROVEMENT_CATEGORIES = {"needs improvement", "ni", "average"}


@dataclass
class DraftDiagnosis:
    score: int
    item: Diagnosis


# =============================================================================
# Helpers
# =============================================================================


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (matches browser Math.round)."""
    return int(math.floor(value + 0.5))


def normalize_category(category: Optional[str]) -> Optional[FieldCategory]:
    """
    Collapse a provider category onto good / needs-improvement / poor.

    FAST/AVERAGE/SLOW and good/needs improvement/poor are both accepted,
    case-insensitively, with '-' or '_' treated as spaces.
    """
    if not category:
        return None
    c = category.strip().lower().replace("_", " ").replace("-", " ")
    if not c:
        return None
    if c in _POOR_CATEGORIES:
        return FieldCategory.POOR
    if c in _NEEDS_IMPROVEMENT_CATEGORIES:
        return FieldCategory.NEEDS_IMPROVEMENT
    if c in ("good", "fast"):
        return FieldCategory.GOOD
    return None


def is_poor(category: Optional[str]) -> bool:
    return normalize_category(category) is FieldCategory.POOR


def is_needs_improvement(category: Optional[str]) -> bool:
    return normalize_category(category) is FieldCategory.NEEDS_IMPROVEMENT


def severity_from_ms(ms: float, medium_threshold: float, high_threshold: float) -> Severity:
    if ms >= high_threshold:
        return Severity.HIGH
    if ms >= medium_threshold:
        return Severity.MEDIUM
    return Severity.LOW


def severity_weight(severity: Severity) -> int:
    if severity is Severity.HIGH:
        return 3
    if severity is Severity.MEDIUM:
        return 2
    return 1


def impact_from_ms(ms: float) -> ExpectedImpact:
    if ms >= 1200:
        return ExpectedImpact.HIGH
    if ms >= 350:
        return ExpectedImpact.MEDIUM
    return ExpectedImpact.LOW


def metric_by_id(metrics: Sequence[Metric], metric_id: str) -> Optional[Metric]:
    for metric in metrics:
        if metric.id == metric_id:
            return metric
    return None


def field_category(field: Optional[FieldData], metric_ids: Iterable[str]) -> Optional[str]:
    if field is None or not field.metrics:
        return None
    for metric_id in metric_ids:
        for metric in field.metrics:
            if metric.id == metric_id and metric.category:
                return metric.category
    return None


def savings_for(opportunities: Sequence[Opportunity], ids: Iterable[str]) -> int:
    """Sum non-negative savings of the first opportunity matching each id."""
    total = 0.0
    for opportunity_id in ids:
        hit = next((o for o in opportunities if o.id == opportunity_id), None)
        if hit is not None and hit.savingsMs is not None:
            total += max(0.0, hit.savingsMs)
    return round_half_up(total)


def _numeric(metric: Optional[Metric]) -> float:
    if metric is None or metric.numericValue is None:
        return 0.0
    return metric.numericValue


def _clean(lines: Iterable[Optional[str]]) -> List[str]:
    return [line for line in lines if line and line.strip()][:MAX_LIST_ITEMS]


def push_diagnosis(
    drafts: List[DraftDiagnosis],
    diagnosis_id: str,
    title: str,
    severity: Severity,
    expected_impact: ExpectedImpact,
    evidence: Iterable[Optional[str]],
    fixes: Iterable[Optional[str]],
    boost: int,
) -> None:
    evidence_lines = _clean(evidence)
    fix_lines = _clean(fixes)
    if not evidence_lines or not fix_lines:
        return

    drafts.append(DraftDiagnosis(
        score=severity_weight(severity) * 100 + boost,
        item=Diagnosis(
            id=diagnosis_id,
            title=title,
            severity=severity,
            expectedImpact=expected_impact,
            evidence=evidence_lines,
            recommendedFixes=fix_lines,
        ),
    ))


# =============================================================================
# Engine
# =============================================================================


def build_diagnoses(extracted: ExtractedMetrics, limit: int = MAX_DIAGNOSES) -> List[Diagnosis]:
    """
    Evaluate every rule and return the top-ranked diagnoses.

    Args:
        extracted: Output of extraction.extract for one strategy
        limit: Maximum number of diagnoses returned

    Returns:
        Up to `limit` diagnoses, highest ranking score first. Identical input
        always yields the identical ordered list.
    """
    drafts: List[DraftDiagnosis] = []
    metrics = extracted.metrics
    opportunities = extracted.opportunities
    field = extracted.field
    perf_score = extracted.perfScore

    ttfb = metric_by_id(metrics, "server-response-time")
    lcp = metric_by_id(metrics, "largest-contentful-paint")
    inp = metric_by_id(metrics, "interaction-to-next-paint")
    cls = metric_by_id(metrics, "cumulative-layout-shift")
    tbt = metric_by_id(metrics, "total-blocking-time")

    field_ttfb = field_category(field, FIELD_TTFB_IDS)
    field_lcp = field_category(field, FIELD_LCP_IDS)
    field_inp = field_category(field, FIELD_INP_IDS)
    field_cls = field_category(field, FIELD_CLS_IDS)

    render_blocking_savings = savings_for(opportunities, RENDER_BLOCKING_IDS)
    js_savings = savings_for(opportunities, JS_OPPORTUNITY_IDS)
    image_savings = savings_for(opportunities, IMAGE_OPPORTUNITY_IDS)
    cache_savings = savings_for(opportunities, CACHE_OPPORTUNITY_IDS)
    third_party_savings = savings_for(opportunities, THIRD_PARTY_IDS)

    # -------------------------------------------------------------------------
    # origin-latency
    # -------------------------------------------------------------------------
    ttfb_ms = _numeric(ttfb)
    if ttfb_ms >= 800 or is_poor(field_ttfb) or is_needs_improvement(field_ttfb):
        if is_poor(field_ttfb) or ttfb_ms >= 1800:
            severity = Severity.HIGH
        else:
            severity = severity_from_ms(ttfb_ms, 800, 1400)
        push_diagnosis(
            drafts,
            "origin-latency",
            "Slow server response (TTFB)",
            severity,
            ExpectedImpact.HIGH if severity is Severity.HIGH else ExpectedImpact.MEDIUM,
            [
                f"Lab server response time: {ttfb.displayValue}." if ttfb and ttfb.displayValue else None,
                f"Field TTFB category: {field_ttfb}." if field_ttfb else None,
            ],
            [
                "Serve HTML through a CDN edge cache where possible.",
                "Profile backend/database latency and reduce cold-start work on initial requests.",
                "Use early hints/preconnect for critical origins if backend optimization is limited.",
            ],
            min(90, round_half_up(ttfb_ms / 25)),
        )

    # -------------------------------------------------------------------------
    # lcp-render-blocking
    # -------------------------------------------------------------------------
    lcp_ms = _numeric(lcp)
    if lcp_ms >= 2500 or render_blocking_savings >= 150 or is_poor(field_lcp):
        if lcp_ms >= 4000 or render_blocking_savings >= 700 or is_poor(field_lcp):
            severity = Severity.HIGH
        else:
            severity = severity_from_ms(lcp_ms, 2500, 3200)
        push_diagnosis(
            drafts,
            "lcp-render-blocking",
            "Late hero rendering (LCP path blocked)",
            severity,
            impact_from_ms(max(lcp_ms / 4, render_blocking_savings)),
            [
                f"Lab LCP: {lcp.displayValue}." if lcp and lcp.displayValue else None,
                f"Render-blocking resource opportunity: ~{render_blocking_savings}ms."
                if render_blocking_savings > 0 else None,
                f"Field LCP category: {field_lcp}." if field_lcp else None,
            ],
            [
                "Inline critical CSS and defer non-critical styles/scripts.",
                "Preload the LCP image/font and reduce above-the-fold payload.",
                "Move non-essential third-party scripts after first paint.",
            ],
            min(140, round_half_up(lcp_ms / 30) + round_half_up(render_blocking_savings / 20)),
        )

    # -------------------------------------------------------------------------
    # js-main-thread
    # -------------------------------------------------------------------------
    tbt_ms = _numeric(tbt)
    inp_ms = _numeric(inp)
    if tbt_ms >= 200 or inp_ms >= 200 or js_savings >= 250 or is_poor(field_inp):
        max_work = max(tbt_ms, float(js_savings), inp_ms)
        if max_work >= 600 or is_poor(field_inp):
            severity = Severity.HIGH
        else:
            severity = severity_from_ms(max_work, 200, 420)
        push_diagnosis(
            drafts,
            "js-main-thread",
            "Main-thread JavaScript pressure",
            severity,
            impact_from_ms(max_work),
            [
                f"Lab Total Blocking Time: {tbt.displayValue}." if tbt and tbt.displayValue else None,
                f"Lab INP audit: {inp.displayValue}." if inp and inp.displayValue else None,
                f"JS-related opportunities suggest ~{js_savings}ms potential savings." if js_savings > 0 else None,
            ],
            [
                "Split large bundles and defer non-critical hydration/work.",
                "Remove unused/legacy JS and delay third-party boot cost.",
                "Break long tasks into smaller chunks and offload heavy computation to workers.",
            ],
            min(150, round_half_up(max_work / 10)),
        )

    # -------------------------------------------------------------------------
    # image-payload
    # -------------------------------------------------------------------------
    if image_savings >= 250:
        if image_savings >= 1200:
            severity = Severity.HIGH
        elif image_savings >= 500:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        push_diagnosis(
            drafts,
            "image-payload",
            "Heavy image payload",
            severity,
            impact_from_ms(image_savings),
            [f"Image-related opportunities suggest ~{image_savings}ms potential savings."],
            [
                "Serve modern formats (AVIF/WebP) and right-size responsive variants.",
                "Lazy-load below-the-fold images and compress aggressively.",
                "Preload only the single critical hero image used for LCP.",
            ],
            min(130, round_half_up(image_savings / 8)),
        )

    # -------------------------------------------------------------------------
    # cache-policy
    # -------------------------------------------------------------------------
    if cache_savings >= 200:
        push_diagnosis(
            drafts,
            "cache-policy",
            "Weak static caching policy",
            Severity.HIGH if cache_savings >= 1200 else Severity.MEDIUM,
            impact_from_ms(cache_savings),
            [f"Caching opportunity indicates ~{cache_savings}ms potential savings."],
            [
                "Use long-lived immutable cache headers for versioned static assets.",
                "Move cacheable assets to a CDN with edge cache and compression enabled.",
            ],
            min(90, round_half_up(cache_savings / 10)),
        )

    # -------------------------------------------------------------------------
    # layout-instability
    # -------------------------------------------------------------------------
    cls_value = _numeric(cls)
    if cls_value >= 0.1 or is_poor(field_cls) or is_needs_improvement(field_cls):
        severity = Severity.HIGH if cls_value >= 0.25 or is_poor(field_cls) else Severity.MEDIUM
        push_diagnosis(
            drafts,
            "layout-instability",
            "Layout instability (CLS)",
            severity,
            ExpectedImpact.MEDIUM if severity is Severity.HIGH else ExpectedImpact.LOW,
            [
                f"Lab CLS: {cls.displayValue}." if cls and cls.displayValue else None,
                f"Field CLS category: {field_cls}." if field_cls else None,
            ],
            [
                "Reserve dimensions for media/ads/embeds and avoid inserting content above existing content.",
                "Use stable font loading (`font-display: swap`) and prevent late style/layout shifts.",
            ],
            min(70, round_half_up(cls_value * 500)),
        )

    # -------------------------------------------------------------------------
    # third-party-overhead
    # -------------------------------------------------------------------------
    if third_party_savings >= 300:
        push_diagnosis(
            drafts,
            "third-party-overhead",
            "Third-party script overhead",
            Severity.HIGH if third_party_savings >= 1000 else Severity.MEDIUM,
            impact_from_ms(third_party_savings),
            [f"Third-party summary audit suggests ~{third_party_savings}ms potential savings."],
            [
                "Delay non-critical tags until after first input/idle.",
                "Remove low-value tags and load remaining tags asynchronously.",
                "Host critical third-party assets with better caching where contracts allow.",
            ],
            min(100, round_half_up(third_party_savings / 12)),
        )

    # -------------------------------------------------------------------------
    # mixed-bottlenecks (fallback)
    # -------------------------------------------------------------------------
    if not drafts and perf_score is not None and perf_score < MIXED_BOTTLENECK_SCORE_THRESHOLD:
        push_diagnosis(
            drafts,
            "mixed-bottlenecks",
            "Mixed bottlenecks detected",
            Severity.MEDIUM,
            ExpectedImpact.MEDIUM,
            [
                f"Performance score is {round_half_up(perf_score * 100)} "
                "with no single dominant PSI opportunity."
            ],
            [
                "Inspect trace/waterfall artifacts to separate backend, render, and third-party costs.",
                "Run repeated tests (same URL/device/network) and optimize the largest stable bottlenecks first.",
            ],
            40,
        )

    drafts.sort(key=lambda d: d.score, reverse=True)
    return [d.item for d in drafts[:limit]]
