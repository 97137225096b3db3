"""
Integrity Engine Schemas

Public exports for input and output Pydantic models.
"""

# Input schemas - Keystrokes
from integrity.schemas.inputs import (
    CORRECTION_KEYS,
    MASKED_KEY,
    KeyModifiers,
    Keystroke,
    KeystrokeBatchPayload,
)

# Input schemas - Face tracking
from integrity.schemas.inputs import (
    AttentionLevel,
    Expression,
    ExpressionMetrics,
    EyeMetrics,
    FaceTrackingData,
    GazeDirection,
    HeadPose,
)

# Input schemas - Sessions
from integrity.schemas.inputs import CreateSessionPayload

# Output schemas
from integrity.schemas.outputs import (
    BurstMetrics,
    CorrectionMetrics,
    EyePair,
    FaceTrackingEventData,
    FaceTrackingEventPayload,
    FaceTrackingEventType,
    InterKeyIntervalStats,
    KeystrokeBatchResponse,
    PatternSeverity,
    RiskLevel,
    SessionStatus,
    SpeedMetrics,
    SpeedWindow,
    SuspiciousPattern,
    TrackingEventSeverity,
    TypingAnalysis,
)

__all__ = [
    # Input - Keystrokes
    "CORRECTION_KEYS",
    "MASKED_KEY",
    "KeyModifiers",
    "Keystroke",
    "KeystrokeBatchPayload",
    # Input - Face tracking
    "AttentionLevel",
    "Expression",
    "ExpressionMetrics",
    "EyeMetrics",
    "FaceTrackingData",
    "GazeDirection",
    "HeadPose",
    # Input - Sessions
    "CreateSessionPayload",
    # Output
    "BurstMetrics",
    "CorrectionMetrics",
    "EyePair",
    "FaceTrackingEventData",
    "FaceTrackingEventPayload",
    "FaceTrackingEventType",
    "InterKeyIntervalStats",
    "KeystrokeBatchResponse",
    "PatternSeverity",
    "RiskLevel",
    "SessionStatus",
    "SpeedMetrics",
    "SpeedWindow",
    "SuspiciousPattern",
    "TrackingEventSeverity",
    "TypingAnalysis",
]
