"""
Integrity Engine Output Schemas

This module defines Pydantic V2 models for everything the engine produces:
batch acknowledgements, the typing analysis, suspicious pattern findings,
face tracking events and session status snapshots.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import ConfigDict, Field

from integrity.schemas.inputs import GazeDirection, HeadPose, WireModel


# =============================================================================
# Enums
# =============================================================================

class RiskLevel(str, Enum):
    """Coarse risk bucket derived from the numeric risk score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        """
        Determine risk level from score.

        Args:
            score: Risk score (0-100)

        Returns:
            LOW up to 25, MEDIUM up to 50, HIGH above.
        """
        if score <= 25:
            return cls.LOW
        elif score <= 50:
            return cls.MEDIUM
        else:
            return cls.HIGH


class PatternSeverity(str, Enum):
    """Severity of a suspicious typing pattern."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrackingEventSeverity(str, Enum):
    """Severity of a face tracking event."""
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"


class FaceTrackingEventType(str, Enum):
    """Security-relevant face tracking transitions."""
    # Face position
    FACE_AWAY = "face_away"
    FACE_RETURNED = "face_returned"
    FACE_NOT_DETECTED = "face_not_detected"
    FACE_DETECTED = "face_detected"
    MULTIPLE_FACES_DETECTED = "multiple_faces_detected"
    # Gaze
    LOOKING_AWAY = "looking_away"
    LOOKING_BACK = "looking_back"
    # Eye state
    EYES_CLOSED_EXTENDED = "eyes_closed_extended"
    EYES_OPENED = "eyes_opened"
    EXCESSIVE_BLINKING = "excessive_blinking"
    SQUINTING_DETECTED = "squinting_detected"
    # Speaking
    TALKING = "talking"
    STOPPED_TALKING = "stopped_talking"
    # Head movement
    HEAD_MOVEMENT_EXCESSIVE = "head_movement_excessive"
    HEAD_TILTED = "head_tilted"
    HEAD_POSITION_NORMAL = "head_position_normal"
    # Expression
    EXPRESSION_CONFUSED = "expression_confused"
    LIP_READING_DETECTED = "lip_reading_detected"


# =============================================================================
# Keystroke Batch Response
# =============================================================================

class KeystrokeBatchResponse(WireModel):
    """Acknowledgement returned for every ingested batch."""
    success: bool
    batch_index: int
    keystroke_count: int = Field(..., ge=0)


# =============================================================================
# Typing Analysis
# =============================================================================

class InterKeyIntervalStats(WireModel):
    """Statistics of consecutive-keystroke time deltas (ms)."""
    count: int = 0
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    variance: float = 0.0


class SpeedMetrics(WireModel):
    avg_wpm: float = 0.0
    peak_wpm: float = 0.0
    avg_cpm: float = 0.0
    peak_cpm: float = 0.0


class CorrectionMetrics(WireModel):
    backspace_count: int = 0
    delete_count: int = 0
    total_corrections: int = 0
    correction_ratio: float = Field(0.0, ge=0.0, le=1.0)


class BurstMetrics(WireModel):
    burst_count: int = 0
    avg_burst_size: float = 0.0
    max_burst_size: int = 0
    bursts_after_long_pause: int = 0
    long_pause_threshold_ms: float = 0.0


class SpeedWindow(WireModel):
    """Fixed-width time bucket used for speed trend inspection."""
    start_time: float
    end_time: float
    keystroke_count: int
    character_count: int
    wpm: float
    cpm: float


class SuspiciousPattern(WireModel):
    """A triggered risk check and the points it contributed."""
    model_config = ConfigDict(frozen=True)

    code: str
    description: str
    severity: PatternSeverity
    contribution: int = Field(..., ge=0)


class TypingAnalysis(WireModel):
    """
    Complete typing rhythm analysis for a session.

    Derived and recomputable; never partially persisted.
    """
    session_id: str
    analyzed_at: datetime

    total_keystrokes: int = 0
    total_characters: int = 0
    total_batches: int = 0
    session_duration_ms: float = 0.0

    inter_key_interval: InterKeyIntervalStats
    speed: SpeedMetrics
    corrections: CorrectionMetrics
    bursts: BurstMetrics
    speed_over_time: List[SpeedWindow] = Field(default_factory=list)

    risk_score: int = Field(0, ge=0, le=100)
    risk_level: RiskLevel = RiskLevel.LOW
    suspicious_patterns: List[SuspiciousPattern] = Field(default_factory=list)

    missing_batches: List[int] = Field(default_factory=list)
    rejected_batches: List[int] = Field(default_factory=list)


# =============================================================================
# Face Tracking Events
# =============================================================================

class EyePair(WireModel):
    model_config = ConfigDict(frozen=True)

    left: Optional[float] = None
    right: Optional[float] = None


class FaceTrackingEventData(WireModel):
    """Signal values that triggered a face tracking event."""
    model_config = ConfigDict(frozen=True)

    head_pose: Optional[HeadPose] = None
    gaze_direction: Optional[GazeDirection] = None
    mouth_openness: Optional[float] = None
    face_detected: Optional[bool] = None
    face_count: Optional[int] = None
    eye_openness: Optional[EyePair] = None
    squint_level: Optional[EyePair] = None
    blink_rate: Optional[float] = None
    eye_closure_duration: Optional[float] = None
    head_movement_count: Optional[int] = None
    brow_inner_up: Optional[float] = None
    brow_down: Optional[float] = None
    lip_movement: Optional[float] = None


class FaceTrackingEventPayload(WireModel):
    """One emitted tracker transition."""
    model_config = ConfigDict(frozen=True)

    type: FaceTrackingEventType
    timestamp: float = Field(..., description="Wall-clock emission time (ms)")
    frame_timestamp: float = Field(..., description="Timestamp of the triggering frame (ms)")
    message: str
    severity: TrackingEventSeverity
    details: Optional[str] = None
    data: Optional[FaceTrackingEventData] = None


# =============================================================================
# Session Status
# =============================================================================

class SessionStatus(WireModel):
    """Snapshot of a session's ingestion state."""
    session_id: str
    total_keystrokes: int = 0
    total_batches: int = 0
    pending_batches: int = 0
    frames_processed: int = 0
    frames_discarded: int = 0
    events_emitted: int = 0
    tracker_states: Dict[str, str] = Field(default_factory=dict)
    seconds_since_last_frame: Optional[float] = None
    seconds_since_last_batch: Optional[float] = None
