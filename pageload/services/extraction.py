"""
Metric Extraction Service

Pure functions that pull the typed shapes the diagnosis engine needs out of a
raw PageSpeed Insights v5 payload:

- perfScore from lighthouseResult.categories.performance.score
- six named lab audits (absent audits are dropped, not null-padded)
- the top 12 "opportunity" audits by estimated savings
- real-user field data from loadingExperience

Missing or malformed fields degrade to None / omission; nothing here raises.
"""

import math
from typing import Any, Dict, List, Optional

from pageload.models.schemas import (
    ExtractedMetrics,
    FieldData,
    FieldMetric,
    Metric,
    Opportunity,
)


# Lab audits surfaced in every summary, in display order
LAB_METRIC_IDS: List[str] = [
    "server-response-time",
    "largest-contentful-paint",
    "interaction-to-next-paint",
    "cumulative-layout-shift",
    "total-blocking-time",
    "speed-index",
]

MAX_OPPORTUNITIES = 12


def as_number(value: Any) -> Optional[float]:
    """Return value as a finite float, or None for non-numbers (bool included)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        # JSON integers are unbounded; anything past float range is unusable
        return None
    if not math.isfinite(number):
        return None
    return number


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _lighthouse_result(payload: Dict[str, Any]) -> Dict[str, Any]:
    return _as_dict(payload.get("lighthouseResult"))


def pick_perf_score(payload: Dict[str, Any]) -> Optional[float]:
    categories = _as_dict(_lighthouse_result(payload).get("categories"))
    return as_number(_as_dict(categories.get("performance")).get("score"))


def pick_audit_metric(audits: Dict[str, Any], audit_id: str) -> Optional[Metric]:
    audit = audits.get(audit_id)
    if not isinstance(audit, dict):
        return None
    return Metric(
        id=audit_id,
        title=_as_str(audit.get("title")),
        displayValue=_as_str(audit.get("displayValue")),
        numericValue=as_number(audit.get("numericValue")),
        score=as_number(audit.get("score")),
    )


def pick_lab_metrics(payload: Dict[str, Any]) -> List[Metric]:
    audits = _as_dict(_lighthouse_result(payload).get("audits"))
    metrics = []
    for audit_id in LAB_METRIC_IDS:
        metric = pick_audit_metric(audits, audit_id)
        if metric is not None:
            metrics.append(metric)
    return metrics


def pick_opportunities(payload: Dict[str, Any], limit: int = MAX_OPPORTUNITIES) -> List[Opportunity]:
    """
    Collect audits whose details.type is "opportunity".

    savingsMs is details.overallSavingsMs when numeric, else the audit's
    numericValue, else None. The result is sorted by savings descending with
    None sorting as 0, and truncated to `limit`.
    """
    audits = _as_dict(_lighthouse_result(payload).get("audits"))
    found: List[Opportunity] = []

    for audit_id, audit in audits.items():
        if not isinstance(audit, dict):
            continue
        details = _as_dict(audit.get("details"))
        if details.get("type") != "opportunity":
            continue

        savings = as_number(details.get("overallSavingsMs"))
        if savings is None:
            savings = as_number(audit.get("numericValue"))

        found.append(Opportunity(
            id=audit_id,
            title=_as_str(audit.get("title"), default=audit_id) or audit_id,
            description=_as_str(audit.get("description")),
            savingsMs=savings,
            displayValue=_as_str(audit.get("displayValue")),
        ))

    found.sort(key=lambda o: o.savingsMs or 0.0, reverse=True)
    return found[:limit]


def pick_field_data(payload: Dict[str, Any]) -> Optional[FieldData]:
    """
    Parse loadingExperience into FieldData.

    Metrics with neither a percentile nor a category are dropped; when none
    survive the whole block is None.
    """
    experience = _as_dict(payload.get("loadingExperience"))
    raw_metrics = _as_dict(experience.get("metrics"))

    metrics: List[FieldMetric] = []
    for metric_id, entry in raw_metrics.items():
        entry = _as_dict(entry)
        percentile = as_number(entry.get("percentile"))
        category = entry.get("category")
        category = category if isinstance(category, str) and category.strip() else None
        if percentile is None and category is None:
            continue
        metrics.append(FieldMetric(id=metric_id, percentile=percentile, category=category))

    if not metrics:
        return None

    overall = experience.get("overall_category")
    return FieldData(
        overallCategory=overall if isinstance(overall, str) and overall.strip() else None,
        metrics=metrics,
    )


def extract(payload: Dict[str, Any]) -> ExtractedMetrics:
    """
    Extract everything the diagnosis engine consumes from one payload.

    Args:
        payload: Decoded PageSpeed Insights response body

    Returns:
        ExtractedMetrics with perfScore, lab metrics, opportunities and field data
    """
    return ExtractedMetrics(
        perfScore=pick_perf_score(payload),
        metrics=pick_lab_metrics(payload),
        opportunities=pick_opportunities(payload),
        field=pick_field_data(payload),
    )
