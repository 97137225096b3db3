"""
Typing Risk Scorer

Rule-based scoring of typing metrics. Each named check contributes a fixed
number of points when triggered; the score is the clamped sum, so every
point of a score can be traced back to a SuspiciousPattern.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, List, Tuple

from integrity.schemas.outputs import (
    BurstMetrics,
    CorrectionMetrics,
    InterKeyIntervalStats,
    PatternSeverity,
    SpeedMetrics,
    SuspiciousPattern,
)


# =============================================================================
# Constants
# =============================================================================

MAX_RISK_SCORE = 100

# Below this many keystrokes there is too little typing to judge
MIN_KEYSTROKES = 50

# Correction ratio under which a long message counts as "no corrections"
MIN_CORRECTION_RATIO = 0.02

# Robotic timing: std-dev below this with more than MIN_RHYTHM_INTERVALS samples
MIN_HUMAN_STD_DEV_MS = 30.0
MIN_RHYTHM_INTERVALS = 20

MAX_BURSTS_AFTER_PAUSE = 3

# Peak WPM over a speed window above which typing is not human
SUPERHUMAN_PEAK_WPM = 180.0

VERY_LOW_AVG_WPM = 10.0


# =============================================================================
# Rule Definitions
# =============================================================================

@dataclass(frozen=True)
class RiskInputs:
    """Metrics the risk checks are evaluated against."""
    total_keystrokes: int
    interval: InterKeyIntervalStats
    corrections: CorrectionMetrics
    speed: SpeedMetrics
    bursts: BurstMetrics


@dataclass(frozen=True)
class RiskRule:
    """A named check with a fixed point contribution."""
    code: str
    severity: PatternSeverity
    contribution: int
    triggered: Callable[[RiskInputs], bool]
    describe: Callable[[RiskInputs], str]

    def evaluate(self, inputs: RiskInputs) -> List[SuspiciousPattern]:
        if not self.triggered(inputs):
            return []
        return [SuspiciousPattern(
            code=self.code,
            description=self.describe(inputs),
            severity=self.severity,
            contribution=self.contribution,
        )]


RISK_RULES: Tuple[RiskRule, ...] = (
    RiskRule(
        code="LOW_KEYSTROKE_COUNT",
        severity=PatternSeverity.LOW,
        contribution=25,
        triggered=lambda m: 0 < m.total_keystrokes < MIN_KEYSTROKES,
        describe=lambda m: f"Very low keystroke count ({m.total_keystrokes})",
    ),
    RiskRule(
        code="NO_CORRECTIONS",
        severity=PatternSeverity.LOW,
        contribution=20,
        triggered=lambda m: (
            m.total_keystrokes > MIN_KEYSTROKES
            and m.corrections.correction_ratio < MIN_CORRECTION_RATIO
        ),
        describe=lambda m: f"Almost no corrections ({m.corrections.correction_ratio:.1%})",
    ),
    RiskRule(
        code="TOO_CONSISTENT_TIMING",
        severity=PatternSeverity.MEDIUM,
        contribution=15,
        triggered=lambda m: (
            m.interval.count > MIN_RHYTHM_INTERVALS
            and m.interval.std_dev < MIN_HUMAN_STD_DEV_MS
        ),
        describe=lambda m: f"Unnaturally consistent timing (std dev {m.interval.std_dev:.1f}ms)",
    ),
    RiskRule(
        code="BURSTS_AFTER_PAUSE",
        severity=PatternSeverity.MEDIUM,
        contribution=25,
        triggered=lambda m: m.bursts.bursts_after_long_pause > MAX_BURSTS_AFTER_PAUSE,
        describe=lambda m: f"{m.bursts.bursts_after_long_pause} typing bursts after long pauses",
    ),
    RiskRule(
        code="SUPERHUMAN_SPEED",
        severity=PatternSeverity.HIGH,
        contribution=15,
        triggered=lambda m: m.speed.peak_wpm > SUPERHUMAN_PEAK_WPM,
        describe=lambda m: f"Unusually fast typing (peak {m.speed.peak_wpm:.0f} WPM)",
    ),
    RiskRule(
        code="VERY_LOW_SPEED",
        severity=PatternSeverity.LOW,
        contribution=10,
        triggered=lambda m: (
            m.total_keystrokes > MIN_KEYSTROKES
            and m.speed.avg_wpm < VERY_LOW_AVG_WPM
        ),
        describe=lambda m: f"Very slow typing ({m.speed.avg_wpm:.0f} WPM)",
    ),
)


# =============================================================================
# Scorer
# =============================================================================

class RiskScorer:
    """
    Evaluates RISK_RULES against typing metrics.

    Attributes:
        rules: Ordered checks; order fixes the order of reported patterns.
    """

    def __init__(self, rules: Iterable[RiskRule] = RISK_RULES) -> None:
        self.rules: Tuple[RiskRule, ...] = tuple(rules)

    def score(self, inputs: RiskInputs) -> Tuple[int, List[SuspiciousPattern]]:
        """
        Score metrics.

        Returns:
            Tuple of (risk_score, suspicious_patterns):
                - risk_score: clamped sum of contributions in [0, 100]
                - suspicious_patterns: triggered checks in rule order
        """
        patterns: List[SuspiciousPattern] = []
        for rule in self.rules:
            patterns.extend(rule.evaluate(inputs))
        return self.aggregate(patterns), patterns

    @staticmethod
    def aggregate(patterns: Iterable[SuspiciousPattern]) -> int:
        """Sum contributions and clamp to [0, MAX_RISK_SCORE]."""
        total = sum(p.contribution for p in patterns)
        return max(0, min(MAX_RISK_SCORE, total))
