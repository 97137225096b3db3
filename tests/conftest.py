"""
Integrity Engine Test Suite - Shared Pytest Fixtures

This conftest.py provides:
- Factory helpers for keystrokes, batches and face frames
- A controllable clock for timing-dependent components
- Processor and analyzer instances

Usage:
    pytest tests/ -v -s
"""

from typing import Any, Dict, Iterable, List, Optional

import pytest

from integrity.config import EngineSettings
from integrity.schemas.inputs import FaceTrackingData, Keystroke, KeystrokeBatchPayload


SESSION_ID = "sess_test"


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Keystroke Factories
# =============================================================================

def make_keystroke(key: str = "a", timestamp: float = 0.0, **kwargs: Any) -> Keystroke:
    """Create a Keystroke for testing."""
    return Keystroke(key=key, timestamp=timestamp, **kwargs)


def make_keystrokes(
    timestamps: Iterable[float],
    key: str = "a",
) -> List[Keystroke]:
    """Create one keystroke per timestamp."""
    return [make_keystroke(key, ts) for ts in timestamps]


def make_batch(
    batch_index: int = 0,
    keystrokes: Optional[List[Keystroke]] = None,
    session_id: str = SESSION_ID,
    start_time: Optional[float] = None,
    end_time: Optional[float] = None,
) -> KeystrokeBatchPayload:
    """Create a KeystrokeBatchPayload spanning its keystrokes."""
    keystrokes = keystrokes or []
    if start_time is None:
        start_time = keystrokes[0].timestamp if keystrokes else 0.0
    if end_time is None:
        end_time = keystrokes[-1].timestamp if keystrokes else start_time
    return KeystrokeBatchPayload(
        session_id=session_id,
        batch_index=batch_index,
        keystrokes=keystrokes,
        start_time=start_time,
        end_time=end_time,
    )


def evenly_spaced(count: int, interval_ms: float, start: float = 0.0) -> List[float]:
    return [start + i * interval_ms for i in range(count)]


# =============================================================================
# Face Frame Factories
# =============================================================================

def frame_dict(
    timestamp: float = 0.0,
    face_detected: bool = True,
    face_count: Optional[int] = None,
    yaw: float = 0.0,
    pitch: float = 0.0,
    roll: float = 0.0,
    gaze: str = "CENTER",
    left_eye: float = 80.0,
    right_eye: float = 80.0,
    is_blinking: bool = False,
    left_squint: Optional[float] = None,
    right_squint: Optional[float] = None,
    mouth_open: float = 0.0,
    brow_raise: float = 0.0,
    brow_inner_up: Optional[float] = None,
    brow_down: Optional[float] = None,
    lip_movement: Optional[float] = None,
) -> Dict[str, Any]:
    """Raw camelCase face frame as sent by the capture client."""
    frame: Dict[str, Any] = {
        "timestamp": timestamp,
        "faceDetected": face_detected,
        "eyes": {
            "leftEyeOpenness": left_eye,
            "rightEyeOpenness": right_eye,
            "isBlinking": is_blinking,
            "gazeDirection": gaze,
        },
        "expression": {
            "dominantExpression": "NEUTRAL",
            "smile": 0.0,
            "frown": 0.0,
            "surprise": 0.0,
            "browRaise": brow_raise,
            "mouthOpen": mouth_open,
        },
        "headPose": {"pitch": pitch, "yaw": yaw, "roll": roll},
    }
    if face_count is not None:
        frame["faceCount"] = face_count
    if left_squint is not None:
        frame["eyes"]["leftSquint"] = left_squint
    if right_squint is not None:
        frame["eyes"]["rightSquint"] = right_squint
    if brow_inner_up is not None:
        frame["expression"]["browInnerUp"] = brow_inner_up
    if brow_down is not None:
        frame["expression"]["browDown"] = brow_down
    if lip_movement is not None:
        frame["expression"]["lipMovement"] = lip_movement
    return frame


def make_frame(timestamp: float = 0.0, **kwargs: Any) -> FaceTrackingData:
    """Validated FaceTrackingData; accepts the same options as frame_dict."""
    return FaceTrackingData.model_validate(frame_dict(timestamp, **kwargs))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def aggregator(settings, clock):
    """Create a KeystrokeAggregator for SESSION_ID."""
    from integrity.processors.keystrokes import KeystrokeAggregator
    return KeystrokeAggregator(SESSION_ID, settings, clock=clock)


@pytest.fixture
def calculator(settings):
    """Create a TypingMetricsCalculator."""
    from integrity.processors.typing_metrics import TypingMetricsCalculator
    return TypingMetricsCalculator(settings)


@pytest.fixture
def analyzer(settings, clock):
    """Create a SessionAnalyzer with default thresholds."""
    from integrity.analyzer import SessionAnalyzer
    return SessionAnalyzer(SESSION_ID, settings=settings, clock=clock)
