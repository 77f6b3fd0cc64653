"""
Diagnosis Engine Test Module

Covers pageload/services/diagnosis.py:
- rule triggers, severity bands and ranking scores
- the evidence/fix guard that suppresses empty diagnoses
- the mixed-bottlenecks fallback
- field category normalisation (FAST/AVERAGE/SLOW and good/ni/poor)
- determinism and the five-item cap
"""

import pytest

from pageload.models.enums import ExpectedImpact, FieldCategory, Severity
from pageload.models.schemas import FieldData, FieldMetric, Opportunity
from pageload.services.diagnosis import (
    MAX_DIAGNOSES,
    build_diagnoses,
    impact_from_ms,
    normalize_category,
    round_half_up,
    savings_for,
    severity_from_ms,
)
from pageload.services.extraction import extract
from pageload.tests.conftest import build_payload, lab_audit, opportunity_audit


def diagnose(**payload_kwargs):
    return build_diagnoses(extract(build_payload(**payload_kwargs)))


class TestHelpers:

    def test_round_half_up(self) -> None:
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(76.4) == 76

    @pytest.mark.parametrize("raw,expected", [
        ("SLOW", FieldCategory.POOR),
        ("poor", FieldCategory.POOR),
        ("AVERAGE", FieldCategory.NEEDS_IMPROVEMENT),
        ("needs_improvement", FieldCategory.NEEDS_IMPROVEMENT),
        ("Needs-Improvement", FieldCategory.NEEDS_IMPROVEMENT),
        ("NI", FieldCategory.NEEDS_IMPROVEMENT),
        ("FAST", FieldCategory.GOOD),
        (" good ", FieldCategory.GOOD),
        ("unknown", None),
        ("", None),
        (None, None),
    ])
    def test_normalize_category(self, raw, expected) -> None:
        assert normalize_category(raw) is expected

    def test_severity_and_impact_bands(self) -> None:
        assert severity_from_ms(1400, 800, 1400) is Severity.HIGH
        assert severity_from_ms(800, 800, 1400) is Severity.MEDIUM
        assert severity_from_ms(799, 800, 1400) is Severity.LOW
        assert impact_from_ms(1200) is ExpectedImpact.HIGH
        assert impact_from_ms(350) is ExpectedImpact.MEDIUM
        assert impact_from_ms(349) is ExpectedImpact.LOW

    def test_savings_ignore_negative_and_missing(self) -> None:
        opportunities = [
            Opportunity(id="a", title="a", savingsMs=100.4),
            Opportunity(id="b", title="b", savingsMs=-300),
            Opportunity(id="c", title="c", savingsMs=None),
            Opportunity(id="a", title="dup", savingsMs=5000),
        ]
        assert savings_for(opportunities, ["a", "b", "c", "missing"]) == 100


class TestRules:

    @pytest.mark.scenario
    def test_slow_origin_ranked_first(self) -> None:
        diagnoses = diagnose(
            perf_score=0.4,
            audits={"server-response-time": lab_audit(2000, "Root document took 2,000 ms")},
        )
        assert [d.id for d in diagnoses] == ["origin-latency"]
        top = diagnoses[0]
        assert top.severity is Severity.HIGH
        assert top.expectedImpact is ExpectedImpact.HIGH
        assert top.evidence == ["Lab server response time: Root document took 2,000 ms."]
        assert len(top.recommendedFixes) == 3

    def test_origin_latency_medium_band(self) -> None:
        (diagnosis,) = diagnose(audits={"server-response-time": lab_audit(1000, "1,000 ms")})
        assert diagnosis.severity is Severity.MEDIUM
        assert diagnosis.expectedImpact is ExpectedImpact.MEDIUM

    @pytest.mark.scenario
    def test_healthy_page_has_no_diagnoses(self, healthy_payload) -> None:
        assert build_diagnoses(extract(healthy_payload)) == []

    def test_poor_field_lcp_alone_fires(self) -> None:
        (diagnosis,) = diagnose(
            field_metrics={"LARGEST_CONTENTFUL_PAINT_MS": {"percentile": 4800, "category": "SLOW"}},
        )
        assert diagnosis.id == "lcp-render-blocking"
        assert diagnosis.severity is Severity.HIGH
        assert diagnosis.expectedImpact is ExpectedImpact.LOW
        assert diagnosis.evidence == ["Field LCP category: SLOW."]

    def test_average_field_cls_is_medium(self) -> None:
        (diagnosis,) = diagnose(
            field_metrics={"CUMULATIVE_LAYOUT_SHIFT_SCORE": {"percentile": 15, "category": "AVERAGE"}},
        )
        assert diagnosis.id == "layout-instability"
        assert diagnosis.severity is Severity.MEDIUM
        assert diagnosis.expectedImpact is ExpectedImpact.LOW

    def test_field_ttfb_prefers_experimental_id(self) -> None:
        (diagnosis,) = diagnose(field_metrics={
            "TIME_TO_FIRST_BYTE": {"category": "FAST"},
            "EXPERIMENTAL_TIME_TO_FIRST_BYTE": {"category": "SLOW"},
        })
        assert diagnosis.id == "origin-latency"
        assert diagnosis.evidence == ["Field TTFB category: SLOW."]

    def test_image_savings_below_threshold_ignored(self) -> None:
        assert diagnose(audits={"offscreen-images": opportunity_audit(249)}) == []

    def test_image_savings_summed_across_group(self) -> None:
        (diagnosis,) = diagnose(audits={
            "offscreen-images": opportunity_audit(300),
            "uses-responsive-images": opportunity_audit(250),
        })
        assert diagnosis.id == "image-payload"
        assert diagnosis.severity is Severity.MEDIUM
        assert diagnosis.evidence == ["Image-related opportunities suggest ~550ms potential savings."]


class TestEvidenceGuard:

    def test_rule_without_evidence_is_dropped(self) -> None:
        # TTFB crosses the threshold but carries no display value and no field data
        assert diagnose(audits={"server-response-time": lab_audit(1500)}) == []

    def test_dropped_rule_does_not_block_fallback(self) -> None:
        (diagnosis,) = diagnose(
            perf_score=0.5,
            audits={"server-response-time": lab_audit(1500)},
        )
        assert diagnosis.id == "mixed-bottlenecks"

    def test_lists_are_bounded(self, slow_payload) -> None:
        for diagnosis in build_diagnoses(extract(slow_payload)):
            assert 1 <= len(diagnosis.evidence) <= 3
            assert 1 <= len(diagnosis.recommendedFixes) <= 3
            assert all(line.strip() for line in diagnosis.evidence)


class TestFallback:

    def test_low_score_without_rules_yields_mixed_bottlenecks(self) -> None:
        diagnoses = diagnose(perf_score=0.5)
        assert len(diagnoses) == 1
        (diagnosis,) = diagnoses
        assert diagnosis.id == "mixed-bottlenecks"
        assert diagnosis.severity is Severity.MEDIUM
        assert diagnosis.evidence == ["Performance score is 50 with no single dominant PSI opportunity."]

    def test_score_at_threshold_yields_nothing(self) -> None:
        assert diagnose(perf_score=0.75) == []

    def test_missing_score_yields_nothing(self) -> None:
        assert diagnose(perf_score=None) == []


class TestRanking:

    @pytest.mark.scenario
    def test_slow_page_top_five(self, slow_payload) -> None:
        diagnoses = build_diagnoses(extract(slow_payload))
        assert len(diagnoses) == MAX_DIAGNOSES
        assert [d.id for d in diagnoses] == [
            "lcp-render-blocking",
            "image-payload",
            "third-party-overhead",
            "js-main-thread",
            "origin-latency",
        ]

    def test_ties_keep_rule_order(self) -> None:
        # cache-policy and third-party-overhead both score 225
        diagnoses = diagnose(audits={
            "third-party-summary": opportunity_audit(300),
            "uses-long-cache-ttl": opportunity_audit(250),
        })
        assert [d.id for d in diagnoses] == ["cache-policy", "third-party-overhead"]

    def test_deterministic(self, slow_payload) -> None:
        extracted = extract(slow_payload)
        assert build_diagnoses(extracted) == build_diagnoses(extracted)

    def test_custom_limit(self, slow_payload) -> None:
        assert len(build_diagnoses(extract(slow_payload), limit=2)) == 2

    def test_poor_field_inp_escalates_light_lab_work(self) -> None:
        extracted = extract(build_payload(
            perf_score=0.9,
            audits={"total-blocking-time": lab_audit(50, "50 ms")},
        ))
        extracted.field = FieldData(metrics=[FieldMetric(id="INTERACTION_TO_NEXT_PAINT", category="poor")])
        (diagnosis,) = build_diagnoses(extracted)
        assert diagnosis.id == "js-main-thread"
        assert diagnosis.severity is Severity.HIGH
        assert diagnosis.expectedImpact is ExpectedImpact.LOW
        assert diagnosis.evidence == ["Lab Total Blocking Time: 50 ms."]
