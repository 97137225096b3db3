"""
Integrity Engine Models

Rule-based typing risk scoring and face signal state trackers.
"""

from integrity.models.risk import RISK_RULES, RiskInputs, RiskRule, RiskScorer
from integrity.models.trackers import (
    Dwell,
    HysteresisTracker,
    RateTracker,
    SignalTracker,
    Transition,
    build_trackers,
)

__all__ = [
    "RISK_RULES",
    "RiskInputs",
    "RiskRule",
    "RiskScorer",
    "Dwell",
    "HysteresisTracker",
    "RateTracker",
    "SignalTracker",
    "Transition",
    "build_trackers",
]
