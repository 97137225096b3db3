"""
Integrity Engine Configuration

Two layers:

- TrackingThresholds / ResolvedThresholds: per-session face tracking cutoffs
  and dwell windows. Every input field is optional; resolve_thresholds turns
  a partial (or invalid) configuration into a fully populated, immutable
  ResolvedThresholds once, at session creation.
- EngineSettings: process-wide keystroke analysis and worker settings read
  from environment variables (optionally via a .env file).

Usage:
    thresholds = resolve_thresholds({"talkingMouthOpen": 40})
    settings = load_settings()
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import ConfigDict, ValidationError, field_validator

from integrity.schemas.inputs import WireModel


logger = logging.getLogger(__name__)


# =============================================================================
# Face Tracking Thresholds
# =============================================================================

@dataclass(frozen=True)
class ResolvedThresholds:
    """
    Fully populated threshold set shared by every tracker of a session.

    Percent values are on the 0-100 scale, angles in degrees, durations in
    seconds.
    """

    # Eye state
    eyes_closed_extended_seconds: float = 3.0
    eye_closed_openness: float = 20.0
    excessive_blink_per_minute: float = 20.0
    blink_window_seconds: float = 60.0
    squint_threshold: float = 50.0

    # Head
    head_tilt_degrees: float = 25.0
    head_movement_count: float = 5.0
    head_movement_window_seconds: float = 10.0
    head_movement_degrees: float = 15.0
    head_turn_yaw_degrees: float = 40.0
    head_turn_pitch_degrees: float = 35.0

    # Expression
    confusion_brow_inner_up: float = 40.0
    confusion_brow_down: float = 30.0
    lip_movement_threshold: float = 20.0
    jaw_open_max: float = 15.0
    talking_mouth_open: float = 30.0

    # Dwell windows (enter / exit)
    face_absent_seconds: float = 1.0
    face_present_seconds: float = 0.0
    head_turn_seconds: float = 0.5
    head_return_seconds: float = 0.3
    gaze_away_seconds: float = 0.5
    gaze_return_seconds: float = 0.3
    eyes_open_seconds: float = 0.0
    squint_seconds: float = 1.0
    head_tilt_seconds: float = 1.0
    talking_seconds: float = 0.3
    stopped_talking_seconds: float = 0.5
    confusion_seconds: float = 1.0
    lip_reading_seconds: float = 1.0
    release_seconds: float = 0.5


DEFAULT_THRESHOLDS = ResolvedThresholds()


class TrackingThresholds(WireModel):
    """
    Threshold configuration as supplied by the caller.

    Any field may be omitted. Values that are not finite, non-negative
    numbers are dropped to None and later replaced by the default.
    """
    model_config = ConfigDict(extra="ignore")

    eyes_closed_extended_seconds: Optional[float] = None
    eye_closed_openness: Optional[float] = None
    excessive_blink_per_minute: Optional[float] = None
    blink_window_seconds: Optional[float] = None
    squint_threshold: Optional[float] = None

    head_tilt_degrees: Optional[float] = None
    head_movement_count: Optional[float] = None
    head_movement_window_seconds: Optional[float] = None
    head_movement_degrees: Optional[float] = None
    head_turn_yaw_degrees: Optional[float] = None
    head_turn_pitch_degrees: Optional[float] = None

    confusion_brow_inner_up: Optional[float] = None
    confusion_brow_down: Optional[float] = None
    lip_movement_threshold: Optional[float] = None
    jaw_open_max: Optional[float] = None
    talking_mouth_open: Optional[float] = None

    face_absent_seconds: Optional[float] = None
    face_present_seconds: Optional[float] = None
    head_turn_seconds: Optional[float] = None
    head_return_seconds: Optional[float] = None
    gaze_away_seconds: Optional[float] = None
    gaze_return_seconds: Optional[float] = None
    eyes_open_seconds: Optional[float] = None
    squint_seconds: Optional[float] = None
    head_tilt_seconds: Optional[float] = None
    talking_seconds: Optional[float] = None
    stopped_talking_seconds: Optional[float] = None
    confusion_seconds: Optional[float] = None
    lip_reading_seconds: Optional[float] = None
    release_seconds: Optional[float] = None

    @field_validator("*", mode="wrap")
    @classmethod
    def _drop_invalid(cls, value: Any, handler, info) -> Optional[float]:
        try:
            result = handler(value)
        except ValidationError:
            logger.debug(f"Ignoring invalid threshold {info.field_name}={value!r}")
            return None
        if result is not None and (not math.isfinite(result) or result < 0):
            logger.debug(f"Ignoring out-of-range threshold {info.field_name}={value!r}")
            return None
        return result


ThresholdsInput = Union[TrackingThresholds, ResolvedThresholds, Mapping[str, Any], None]


def resolve_thresholds(thresholds: ThresholdsInput = None) -> ResolvedThresholds:
    """
    Resolve a partial threshold configuration into a ResolvedThresholds.

    Args:
        thresholds: None, a mapping (camelCase or snake_case keys), a
            TrackingThresholds, or an already resolved instance.

    Returns:
        Frozen ResolvedThresholds with every field populated.

    Never raises: anything unusable falls back to DEFAULT_THRESHOLDS.
    """
    if thresholds is None:
        return DEFAULT_THRESHOLDS
    if isinstance(thresholds, ResolvedThresholds):
        return thresholds
    if not isinstance(thresholds, TrackingThresholds):
        if not isinstance(thresholds, Mapping):
            logger.debug(f"Unusable thresholds of type {type(thresholds).__name__}, using defaults")
            return DEFAULT_THRESHOLDS
        thresholds = TrackingThresholds.model_validate(dict(thresholds))

    overrides = {
        name: value
        for name, value in thresholds.model_dump().items()
        if value is not None
    }
    return replace(DEFAULT_THRESHOLDS, **overrides)


# =============================================================================
# Engine Settings
# =============================================================================

@dataclass(frozen=True)
class EngineSettings:
    """Process-wide keystroke analysis and worker settings."""

    # Burst detection
    long_pause_ms: float = 2000.0
    short_interval_ms: float = 200.0
    min_burst_size: int = 3

    # Speed and rhythm
    speed_window_ms: float = 5000.0
    rhythm_cutoff_ms: float = 5000.0

    # Batch aggregation
    first_batch_index: int = 0
    gap_timeout_ms: float = 10000.0
    max_pending_batches: int = 5

    # Session workers
    queue_size: int = 1000

    log_level: str = "INFO"


# Environment variable -> EngineSettings field
_ENV_FIELDS = {
    "INTEGRITY_LONG_PAUSE_MS": "long_pause_ms",
    "INTEGRITY_SHORT_INTERVAL_MS": "short_interval_ms",
    "INTEGRITY_MIN_BURST_SIZE": "min_burst_size",
    "INTEGRITY_SPEED_WINDOW_MS": "speed_window_ms",
    "INTEGRITY_RHYTHM_CUTOFF_MS": "rhythm_cutoff_ms",
    "INTEGRITY_FIRST_BATCH_INDEX": "first_batch_index",
    "INTEGRITY_GAP_TIMEOUT_MS": "gap_timeout_ms",
    "INTEGRITY_MAX_PENDING_BATCHES": "max_pending_batches",
    "INTEGRITY_QUEUE_SIZE": "queue_size",
    "INTEGRITY_LOG_LEVEL": "log_level",
}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    """
    Build EngineSettings from environment variables.

    Reads a .env file first (python-dotenv) when no explicit mapping is
    given. Unparseable values keep their defaults and log a warning.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    types = {f.name: f.type for f in fields(EngineSettings)}
    values = {}
    for env_name, field_name in _ENV_FIELDS.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        kind = types[field_name]
        try:
            if kind == "int":
                values[field_name] = int(raw)
            elif kind == "float":
                values[field_name] = float(raw)
            else:
                values[field_name] = raw.upper()
        except ValueError:
            logger.warning(f"Invalid value for {env_name}: {raw!r}, using default")

    return EngineSettings(**values)
