"""
Integrity Engine Processors

Public exports for keystroke aggregation, typing feature engineering and
face frame ingestion.
"""

from integrity.processors.bursts import Burst, BurstDetector
from integrity.processors.face import FaceFrameIngestor
from integrity.processors.keystrokes import KeystrokeAggregator, KeystrokeLog
from integrity.processors.typing_metrics import TypingMetricsCalculator

__all__ = [
    "Burst",
    "BurstDetector",
    "FaceFrameIngestor",
    "KeystrokeAggregator",
    "KeystrokeLog",
    "TypingMetricsCalculator",
]
