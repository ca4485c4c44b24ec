"""
Risk level utilities.
Score-derived risk tiers with configurable ascending thresholds.
"""

from enum import Enum
from typing import Optional

from spamdetective.config import DetectionSettings, DEFAULT_DETECTION_SETTINGS


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


RISK_PRIORITY = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
}


def derive_risk_from_score(
    score: int,
    thresholds: Optional[DetectionSettings] = None,
) -> RiskLevel:
    """
    Derive risk level purely from score.

    Args:
        score: Accumulated risk score (may be negative)
        thresholds: Detection settings carrying the medium/high thresholds
            (defaults 40/70)

    Returns:
        RiskLevel.LOW, MEDIUM or HIGH
    """
    config = thresholds or DEFAULT_DETECTION_SETTINGS

    if score >= config.risk_threshold_high:
        return RiskLevel.HIGH
    elif score >= config.risk_threshold_medium:
        return RiskLevel.MEDIUM
    else:
        return RiskLevel.LOW


def is_suspicious_score(score: int, thresholds: Optional[DetectionSettings] = None) -> bool:
    """The low threshold (default 25) is the suspicious cutoff, whatever the tier."""
    config = thresholds or DEFAULT_DETECTION_SETTINGS
    return score >= config.risk_threshold_low


def risk_priority(level: str) -> int:
    """Sort weight for a risk level; unknown levels sort last."""
    try:
        return RISK_PRIORITY[RiskLevel(level)]
    except ValueError:
        return 0

