"""
Typing Metrics Calculator

Stateless feature engineering over a folded keystroke log. Extracts
inter-key interval statistics, speed, corrections, bursts and the speed
trend, then hands everything to the RiskScorer.

compute() is a pure function of the log, so calling it twice on an
unchanged log yields identical results apart from `analyzed_at`, which
is stamped at call time unless the caller passes one.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import numpy as np
from river.stats import Var

from integrity.config import EngineSettings
from integrity.models.risk import RiskInputs, RiskScorer
from integrity.processors.bursts import BurstDetector
from integrity.processors.keystrokes import KeystrokeLog
from integrity.schemas.inputs import Keystroke
from integrity.schemas.outputs import (
    CorrectionMetrics,
    InterKeyIntervalStats,
    RiskLevel,
    SpeedMetrics,
    SpeedWindow,
    TypingAnalysis,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Characters per word for WPM
AVG_WORD_LENGTH = 5

MS_PER_MINUTE = 60000.0


# =============================================================================
# Metric Helpers
# =============================================================================

def inter_key_intervals(keystrokes: Sequence[Keystroke]) -> List[float]:
    """Timestamp deltas between consecutive keystrokes (negative clamped to 0)."""
    return [
        max(0.0, curr.timestamp - prev.timestamp)
        for prev, curr in zip(keystrokes, keystrokes[1:])
    ]


def interval_stats(intervals: Sequence[float], cutoff_ms: float) -> InterKeyIntervalStats:
    """
    Rhythm statistics over intervals shorter than cutoff_ms.

    Mean and variance come from a Welford accumulator (population variance);
    longer intervals are idle time and excluded.
    """
    rhythm = [iv for iv in intervals if iv < cutoff_ms]
    if not rhythm:
        return InterKeyIntervalStats()

    var = Var(ddof=0)
    for interval in rhythm:
        var.update(interval)

    variance = max(0.0, var.get())
    return InterKeyIntervalStats(
        count=len(rhythm),
        min=min(rhythm),
        max=max(rhythm),
        mean=var.mean.get(),
        median=float(np.median(rhythm)),
        std_dev=variance ** 0.5,
        variance=variance,
    )


def correction_metrics(keystrokes: Sequence[Keystroke]) -> CorrectionMetrics:
    """Backspace/Delete usage; ratio is corrections over total keystrokes."""
    backspaces = sum(1 for k in keystrokes if k.key == "Backspace")
    deletes = sum(1 for k in keystrokes if k.key == "Delete")
    total = sum(1 for k in keystrokes if k.is_correction)
    ratio = total / len(keystrokes) if keystrokes else 0.0
    return CorrectionMetrics(
        backspace_count=backspaces,
        delete_count=deletes,
        total_corrections=total,
        correction_ratio=ratio,
    )


def speed_windows(keystrokes: Sequence[Keystroke], window_ms: float) -> List[SpeedWindow]:
    """
    Bucket keystrokes into fixed-width windows starting at the first
    keystroke. Every bucket up to the one holding the last keystroke is
    returned, empty ones included.
    """
    if not keystrokes or window_ms <= 0:
        return []

    origin = keystrokes[0].timestamp
    last = max(k.timestamp for k in keystrokes)
    bucket_count = int((last - origin) // window_ms) + 1
    key_counts = [0] * bucket_count
    char_counts = [0] * bucket_count

    for k in keystrokes:
        bucket = int(max(0.0, k.timestamp - origin) // window_ms)
        key_counts[bucket] += 1
        if k.is_printable:
            char_counts[bucket] += 1

    minutes = window_ms / MS_PER_MINUTE
    windows = []
    for i in range(bucket_count):
        cpm = char_counts[i] / minutes
        windows.append(SpeedWindow(
            start_time=origin + i * window_ms,
            end_time=origin + (i + 1) * window_ms,
            keystroke_count=key_counts[i],
            character_count=char_counts[i],
            wpm=cpm / AVG_WORD_LENGTH,
            cpm=cpm,
        ))
    return windows


def speed_metrics(
    characters: int,
    duration_ms: float,
    windows: Sequence[SpeedWindow],
) -> SpeedMetrics:
    """Session-average speed plus peaks over the speed windows."""
    if characters == 0 or duration_ms <= 0:
        avg_cpm = 0.0
    else:
        avg_cpm = characters / (duration_ms / MS_PER_MINUTE)
    peak_cpm = max((w.cpm for w in windows), default=0.0)
    return SpeedMetrics(
        avg_wpm=avg_cpm / AVG_WORD_LENGTH,
        peak_wpm=peak_cpm / AVG_WORD_LENGTH,
        avg_cpm=avg_cpm,
        peak_cpm=peak_cpm,
    )


# =============================================================================
# Calculator
# =============================================================================

class TypingMetricsCalculator:
    """
    Computes a TypingAnalysis from a KeystrokeLog.

    Usage:
        calculator = TypingMetricsCalculator(settings)
        analysis = calculator.compute(aggregator.snapshot())
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        burst_detector: Optional[BurstDetector] = None,
        risk_scorer: Optional[RiskScorer] = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.burst_detector = burst_detector or BurstDetector.from_settings(self.settings)
        self.risk_scorer = risk_scorer or RiskScorer()

    def compute(
        self,
        log: KeystrokeLog,
        analyzed_at: Optional[datetime] = None,
    ) -> TypingAnalysis:
        """
        Analyze the keystroke log.

        Args:
            log: Folded keystroke log snapshot.
            analyzed_at: Analysis timestamp; defaults to now (UTC).

        Returns:
            TypingAnalysis with metrics, score, level and patterns.
        """
        if analyzed_at is None:
            analyzed_at = datetime.now(timezone.utc)

        keystrokes = log.keystrokes
        duration_ms = log.duration_ms
        characters = sum(1 for k in keystrokes if k.is_printable)

        intervals = inter_key_intervals(keystrokes)
        ikis = interval_stats(intervals, self.settings.rhythm_cutoff_ms)
        corrections = correction_metrics(keystrokes)
        windows = speed_windows(keystrokes, self.settings.speed_window_ms)
        speed = speed_metrics(characters, duration_ms, windows)
        bursts = self.burst_detector.detect(keystrokes)

        risk_score, patterns = self.risk_scorer.score(RiskInputs(
            total_keystrokes=len(keystrokes),
            interval=ikis,
            corrections=corrections,
            speed=speed,
            bursts=bursts,
        ))

        analysis = TypingAnalysis(
            session_id=log.session_id,
            analyzed_at=analyzed_at,
            total_keystrokes=len(keystrokes),
            total_characters=characters,
            total_batches=log.total_batches,
            session_duration_ms=duration_ms,
            inter_key_interval=ikis,
            speed=speed,
            corrections=corrections,
            bursts=bursts,
            speed_over_time=windows,
            risk_score=risk_score,
            risk_level=RiskLevel.from_score(risk_score),
            suspicious_patterns=patterns,
            missing_batches=list(log.missing_batches),
            rejected_batches=list(log.rejected_batches),
        )

        logger.debug(
            f"Typing analysis for session {log.session_id}: "
            f"{len(keystrokes)} keystrokes, risk {analysis.risk_level.value} ({risk_score})"
        )
        return analysis
