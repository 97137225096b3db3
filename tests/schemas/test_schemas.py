"""
Pydantic Schema Validation Tests

Tests for input and output schemas to ensure proper validation,
serialization, and type enforcement.
"""

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError

from integrity.schemas.inputs import (
    MASKED_KEY,
    CreateSessionPayload,
    ExpressionMetrics,
    FaceTrackingData,
    GazeDirection,
    Keystroke,
    KeystrokeBatchPayload,
)
from integrity.schemas.outputs import (
    BurstMetrics,
    CorrectionMetrics,
    FaceTrackingEventPayload,
    FaceTrackingEventType,
    InterKeyIntervalStats,
    SpeedMetrics,
    SuspiciousPattern,
    TrackingEventSeverity,
    TypingAnalysis,
)

from tests.conftest import frame_dict


# =============================================================================
# Keystroke Schemas
# =============================================================================

class TestKeystroke:
    """Keystroke parsing and redaction."""

    def test_camel_case_fields(self):
        keystroke = Keystroke.model_validate({
            "key": "a",
            "code": "KeyA",
            "timestamp": 1000.5,
            "modifiers": {"shift": True},
            "targetType": "textarea",
        })
        assert keystroke.target_type == "textarea"
        assert keystroke.modifiers.shift is True
        assert keystroke.modifiers.ctrl is False

    def test_password_key_redacted(self):
        keystroke = Keystroke.model_validate({"key": "s", "timestamp": 0, "isPassword": True})
        assert keystroke.key == MASKED_KEY
        assert keystroke.is_printable is False

    def test_snake_case_password_redacted(self):
        keystroke = Keystroke(key="s", timestamp=0, is_password=True)
        assert keystroke.key == MASKED_KEY

    def test_printable_and_correction(self):
        assert Keystroke(key="x", timestamp=0).is_printable
        assert not Keystroke(key="Enter", timestamp=0).is_printable
        assert Keystroke(key="Backspace", timestamp=0).is_correction
        assert Keystroke(key="Delete", timestamp=0).is_correction
        assert not Keystroke(key="x", timestamp=0).is_correction

    def test_keystroke_is_immutable(self):
        keystroke = Keystroke(key="x", timestamp=0)
        with pytest.raises(ValidationError):
            keystroke.key = "y"

    def test_missing_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            Keystroke.model_validate({"key": "a"})


class TestKeystrokeBatch:
    """Batch payload validation."""

    def _payload(self, **overrides):
        payload = {
            "sessionId": "sess_1",
            "batchIndex": 0,
            "keystrokes": [{"key": "a", "timestamp": 0}, {"key": "b", "timestamp": 100}],
            "startTime": 0,
            "endTime": 5000,
        }
        payload.update(overrides)
        return payload

    def test_valid_batch(self):
        batch = KeystrokeBatchPayload.model_validate(self._payload())
        assert batch.session_id == "sess_1"
        assert len(batch.keystrokes) == 2
        assert batch.is_monotonic()

    def test_non_monotonic_detected(self):
        batch = KeystrokeBatchPayload.model_validate(self._payload(
            keystrokes=[{"key": "a", "timestamp": 100}, {"key": "b", "timestamp": 50}]
        ))
        assert not batch.is_monotonic()

    def test_equal_timestamps_are_monotonic(self):
        batch = KeystrokeBatchPayload.model_validate(self._payload(
            keystrokes=[{"key": "a", "timestamp": 100}, {"key": "b", "timestamp": 100}]
        ))
        assert batch.is_monotonic()

    @pytest.mark.parametrize("overrides", [
        {"batchIndex": -1},
        {"sessionId": ""},
        {"startTime": "yesterday"},
    ])
    def test_invalid_batch_rejected(self, overrides):
        with pytest.raises(ValidationError):
            KeystrokeBatchPayload.model_validate(self._payload(**overrides))


# =============================================================================
# Face Tracking Schemas
# =============================================================================

class TestFaceTrackingData:
    """Frame validation."""

    def test_valid_frame(self):
        frame = FaceTrackingData.model_validate(frame_dict(10, gaze="UP_LEFT", roll=12))
        assert frame.eyes.gaze_direction == GazeDirection.UP_LEFT
        assert frame.head_pose.roll == 12
        assert frame.faces == 1

    def test_face_count_defaults_from_detection(self):
        frame = FaceTrackingData.model_validate(frame_dict(0, face_detected=False))
        assert frame.faces == 0
        frame = FaceTrackingData.model_validate(frame_dict(0, face_count=3))
        assert frame.faces == 3

    def test_nan_rejected(self):
        frame = frame_dict(0)
        frame["expression"]["mouthOpen"] = float("inf")
        with pytest.raises(ValidationError):
            FaceTrackingData.model_validate(frame)

    def test_unknown_gaze_rejected(self):
        with pytest.raises(ValidationError):
            FaceTrackingData.model_validate(frame_dict(0, gaze="SIDEWAYS"))

    def test_inner_brow_fallback(self):
        expression = ExpressionMetrics(smile=0, frown=0, surprise=0, brow_raise=45, mouth_open=0)
        assert expression.inner_brow == 45
        expression = ExpressionMetrics(
            smile=0, frown=0, surprise=0, brow_raise=45, mouth_open=0, brow_inner_up=10,
        )
        assert expression.inner_brow == 10


class TestCreateSessionPayload:

    def test_thresholds_optional(self):
        payload = CreateSessionPayload.model_validate({"sessionId": "s"})
        assert payload.thresholds is None

    def test_thresholds_kept_raw(self):
        payload = CreateSessionPayload.model_validate({"sessionId": "s", "thresholds": {"squintThreshold": "x"}})
        assert payload.thresholds == {"squintThreshold": "x"}


# =============================================================================
# Output Schemas
# =============================================================================

class TestOutputSchemas:
    """Serialization of engine outputs."""

    def test_event_payload_serializes_camel_case(self):
        event = FaceTrackingEventPayload(
            type=FaceTrackingEventType.FACE_AWAY,
            timestamp=1.0,
            frame_timestamp=2.0,
            message="Face Turned Away",
            severity=TrackingEventSeverity.WARNING,
        )
        data = event.model_dump(by_alias=True, mode="json")
        assert data["type"] == "face_away"
        assert data["frameTimestamp"] == 2.0
        assert data["severity"] == "warning"

    def test_correction_ratio_bounds(self):
        with pytest.raises(ValidationError):
            CorrectionMetrics(correction_ratio=1.5)

    def test_pattern_contribution_non_negative(self):
        with pytest.raises(ValidationError):
            SuspiciousPattern(code="X", description="x", severity="low", contribution=-1)

    def test_risk_score_bounds(self):
        with pytest.raises(ValidationError):
            TypingAnalysis(
                session_id="s",
                analyzed_at=datetime.now(timezone.utc),
                inter_key_interval=InterKeyIntervalStats(),
                speed=SpeedMetrics(),
                corrections=CorrectionMetrics(),
                bursts=BurstMetrics(),
                risk_score=101,
            )
