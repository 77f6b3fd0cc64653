"""
Enumeration definitions for the PageLoad diagnosis service.

All enums inherit from both `str` and `Enum` to ensure JSON serialization compatibility
with Pydantic models, enabling automatic serialization/deserialization in API responses.
"""

from enum import Enum
from typing import List


class Strategy(str, Enum):
    """
    Device strategy for a single PageSpeed Insights audit.

    Values: 'mobile' | 'desktop'
    """
    MOBILE = "mobile"
    DESKTOP = "desktop"


class StrategyChoice(str, Enum):
    """
    Strategy selection accepted on the inbound request.

    BOTH fans out into one MOBILE and one DESKTOP audit, run concurrently.
    """
    MOBILE = "mobile"
    DESKTOP = "desktop"
    BOTH = "both"

    def expand(self) -> List[Strategy]:
        if self is StrategyChoice.BOTH:
            return [Strategy.MOBILE, Strategy.DESKTOP]
        return [Strategy(self.value)]


class Severity(str, Enum):
    """
    How badly a diagnosed bottleneck is hurting the page.

    Ranking weight: high=3, medium=2, low=1 (see diagnosis.severity_weight).
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExpectedImpact(str, Enum):
    """
    How much fixing a diagnosed bottleneck is expected to help.
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FieldCategory(str, Enum):
    """
    Normalised real-user (CrUX) category.

    The provider reports FAST / AVERAGE / SLOW; older payloads and other
    sources use good / needs improvement / poor. Both vocabularies collapse
    onto these three values.
    """
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs-improvement"
    POOR = "poor"
