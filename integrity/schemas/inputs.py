"""
Integrity Engine Input Schemas

This module defines Pydantic V2 models for:
- Keystroke batch payloads (KeystrokeBatchPayload)
- Per-frame face tracking samples (FaceTrackingData)
- Session creation requests (CreateSessionPayload)

Wire names are camelCase; attributes are snake_case. Both are accepted.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# Replacement value for keys typed into password fields
MASKED_KEY = "[key]"

# Keys counted as corrections
CORRECTION_KEYS = {"Backspace", "Delete"}


class WireModel(BaseModel):
    """Base model accepting both camelCase and snake_case field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Enums
# =============================================================================

class GazeDirection(str, Enum):
    """Gaze direction categories."""
    CENTER = "CENTER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    UP = "UP"
    DOWN = "DOWN"
    UP_LEFT = "UP_LEFT"
    UP_RIGHT = "UP_RIGHT"
    DOWN_LEFT = "DOWN_LEFT"
    DOWN_RIGHT = "DOWN_RIGHT"


class Expression(str, Enum):
    """Dominant facial expression."""
    NEUTRAL = "NEUTRAL"
    HAPPY = "HAPPY"
    SAD = "SAD"
    SURPRISED = "SURPRISED"
    ANGRY = "ANGRY"
    CONFUSED = "CONFUSED"


class AttentionLevel(str, Enum):
    """Attention level derived by the capture client."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    AWAY = "AWAY"


# =============================================================================
# Keystroke Models
# =============================================================================

class KeyModifiers(WireModel):
    """Modifier key state at the time of the keystroke."""
    model_config = ConfigDict(frozen=True)

    ctrl: bool = False
    alt: bool = False
    shift: bool = False
    meta: bool = False


class Keystroke(WireModel):
    """
    Single recorded keystroke. Immutable once recorded.

    Keys typed into password fields are replaced by MASKED_KEY during
    validation; only type, timing and code survive.
    """
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Key value (e.g. 'a', 'Enter', 'Backspace')")
    code: str = Field("", description="Physical key code (e.g. 'KeyA')")
    timestamp: float = Field(..., description="Unix timestamp in milliseconds")
    modifiers: KeyModifiers = Field(default_factory=KeyModifiers)
    target_type: str = Field("text", description="Input type of the target field")
    is_password: bool = Field(False, description="Typed into a password field")

    @model_validator(mode="before")
    @classmethod
    def _redact_password_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and (data.get("isPassword") or data.get("is_password")):
            data = dict(data)
            data["key"] = MASKED_KEY
        return data

    @property
    def is_printable(self) -> bool:
        """Single-character key outside a password field."""
        return len(self.key) == 1 and not self.is_password

    @property
    def is_correction(self) -> bool:
        return self.key in CORRECTION_KEYS


class KeystrokeBatchPayload(WireModel):
    """
    Batch of keystrokes flushed periodically by the capture client.
    """
    session_id: str = Field(..., min_length=1, description="Active session identifier")
    batch_index: int = Field(..., ge=0, description="Monotonic batch counter per session")
    keystrokes: List[Keystroke] = Field(default_factory=list)
    start_time: float = Field(..., description="Batch start (ms)")
    end_time: float = Field(..., description="Batch end (ms)")

    def is_monotonic(self) -> bool:
        """True when keystroke timestamps never decrease within the batch."""
        return all(
            prev.timestamp <= curr.timestamp
            for prev, curr in zip(self.keystrokes, self.keystrokes[1:])
        )


# =============================================================================
# Face Tracking Models
# =============================================================================

class FaceModel(WireModel):
    """Face tracking sub-models reject NaN and infinity."""
    model_config = ConfigDict(allow_inf_nan=False)


class HeadPose(FaceModel):
    """Head pose in degrees."""
    pitch: float = Field(..., description="Nodding up/down")
    yaw: float = Field(..., description="Turning left/right")
    roll: float = Field(..., description="Tilting")


class EyeMetrics(FaceModel):
    """Per-frame eye measurements."""
    left_eye_openness: float = Field(..., ge=0.0, le=100.0)
    right_eye_openness: float = Field(..., ge=0.0, le=100.0)
    is_blinking: bool = False
    gaze_direction: GazeDirection = GazeDirection.CENTER
    left_squint: Optional[float] = Field(None, ge=0.0, le=100.0)
    right_squint: Optional[float] = Field(None, ge=0.0, le=100.0)


class ExpressionMetrics(FaceModel):
    """Per-frame expression measurements (blendshape weights, 0-100)."""
    dominant_expression: Expression = Expression.NEUTRAL
    smile: float = Field(..., ge=0.0, le=100.0)
    frown: float = Field(..., ge=0.0, le=100.0)
    surprise: float = Field(..., ge=0.0, le=100.0)
    brow_raise: float = Field(..., ge=0.0, le=100.0)
    mouth_open: float = Field(..., ge=0.0, le=100.0)
    brow_inner_up: Optional[float] = Field(None, ge=0.0, le=100.0)
    brow_down: Optional[float] = Field(None, ge=0.0, le=100.0)
    lip_movement: Optional[float] = Field(None, ge=0.0, le=100.0)

    @property
    def inner_brow(self) -> float:
        """Inner brow raise, falling back to the combined brow raise."""
        return self.brow_inner_up if self.brow_inner_up is not None else self.brow_raise


class FaceTrackingData(FaceModel):
    """
    Face tracking sample for a single processed video frame.
    """
    timestamp: float = Field(..., description="Frame timestamp (ms)")
    face_detected: bool
    face_count: Optional[int] = Field(None, ge=0)
    eyes: EyeMetrics
    expression: ExpressionMetrics
    head_pose: HeadPose
    attention_level: Optional[AttentionLevel] = None

    @property
    def faces(self) -> int:
        """Number of faces, defaulting from the detection flag."""
        if self.face_count is not None:
            return self.face_count
        return 1 if self.face_detected else 0


# =============================================================================
# Session Requests
# =============================================================================

class CreateSessionPayload(WireModel):
    """
    Session registration request.

    Thresholds are kept as a raw mapping; invalid values are defaulted by
    resolve_thresholds rather than rejected.
    """
    session_id: str = Field(..., min_length=1)
    thresholds: Optional[Dict[str, Any]] = None
