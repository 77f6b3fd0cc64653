"""
Package initialization file for PageLoad models.

This module exports all Pydantic schemas and enumerations from schemas.py and enums.py,
making them importable from pageload.models directly.

Usage:
    from pageload.models import (
        Strategy,
        FetchOk,
        FetchErr,
        Diagnosis,
        PageLoadResponse,
        # ... etc
    )
"""

# =============================================================================
# Enums
# =============================================================================

from pageload.models.enums import (
    Strategy,
    StrategyChoice,
    Severity,
    ExpectedImpact,
    FieldCategory,
)


# =============================================================================
# Schemas
# =============================================================================

from pageload.models.schemas import (
    # Upstream fetch results
    FetchOk,
    FetchErr,
    FetchResult,
    # Extracted metrics
    Metric,
    Opportunity,
    FieldMetric,
    FieldData,
    ExtractedMetrics,
    # Diagnoses
    Diagnosis,
    # Per-strategy results
    StrategySummary,
    StrategyError,
    StrategyResult,
    # API envelopes
    PageLoadResponse,
    RateLimitResponse,
    ErrorResponse,
)


__all__ = [
    # Enums
    "Strategy",
    "StrategyChoice",
    "Severity",
    "ExpectedImpact",
    "FieldCategory",
    # Schemas
    "FetchOk",
    "FetchErr",
    "FetchResult",
    "Metric",
    "Opportunity",
    "FieldMetric",
    "FieldData",
    "ExtractedMetrics",
    "Diagnosis",
    "StrategySummary",
    "StrategyError",
    "StrategyResult",
    "PageLoadResponse",
    "RateLimitResponse",
    "ErrorResponse",
]
