"""
Face Signal State Trackers

One independent state machine per monitored condition. Trackers never fire
on a single noisy sample: a condition must hold for its dwell (a minimum
number of consecutive frames and a minimum span of frame time) before the
tracker changes state, and the way back needs its own dwell.

Two families:

- HysteresisTracker: two-state machine (normal / flagged). Entering the
  flagged state yields the entry event; leaving yields the paired exit event,
  or silently re-arms when the signal has none.
- RateTracker: counts discrete occurrences in a sliding time window and
  fires once when the count exceeds its limit, re-arming after it drops back.

Trackers only decide transitions. Stamping, messages and the outward stream
belong to the EventEmitter.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

from integrity.config import ResolvedThresholds
from integrity.schemas.inputs import FaceTrackingData, GazeDirection
from integrity.schemas.outputs import EyePair, FaceTrackingEventData, FaceTrackingEventType


# =============================================================================
# Dwell and Transitions
# =============================================================================

@dataclass(frozen=True)
class Dwell:
    """
    Minimum persistence before a transition is accepted.

    Both limits must be met: at least `frames` consecutive frames and at
    least `ms` milliseconds between the first and the latest of them.
    """
    frames: int = 1
    ms: float = 0.0

    @classmethod
    def seconds(cls, seconds: float) -> Dwell:
        return cls(frames=1, ms=seconds * 1000.0)

    def satisfied(self, streak_frames: int, streak_ms: float) -> bool:
        return streak_frames >= max(1, self.frames) and streak_ms >= self.ms


INSTANT = Dwell(frames=1, ms=0.0)


@dataclass(frozen=True)
class Transition:
    """A state change decided by a tracker."""
    tracker: str
    event_type: FaceTrackingEventType
    entered: bool
    frame_timestamp: float
    details: Optional[str] = None
    data: Optional[FaceTrackingEventData] = None


# =============================================================================
# Base Tracker
# =============================================================================

class SignalTracker(ABC):
    """
    Common state for every tracker.

    Attributes:
        name: Stable tracker identifier.
        face_gated: Frames without a face are held, not evaluated.
        state: Current discrete state name.
        state_since: Frame timestamp at which the current state began.
        last_update: Timestamp of the latest frame seen.
    """

    name: str = "signal"
    face_gated: bool = True
    normal_state: str = "normal"
    flagged_state: str = "flagged"

    def __init__(self, thresholds: ResolvedThresholds) -> None:
        self.thresholds = thresholds
        self.state: str = self.normal_state
        self.state_since: Optional[float] = None
        self.last_update: Optional[float] = None

    @property
    def flagged(self) -> bool:
        return self.state == self.flagged_state

    def update(self, frame: FaceTrackingData) -> Optional[Transition]:
        """
        Feed one frame; returns a Transition when the state changes.

        Time only moves forward: a frame stamped earlier than one already
        seen is evaluated at the latest observed timestamp.
        """
        now = frame.timestamp if self.last_update is None else max(self.last_update, frame.timestamp)
        self.last_update = now
        if self.state_since is None:
            self.state_since = now
        if self.face_gated and not frame.face_detected:
            self.hold()
            return None
        return self._evaluate(frame, now)

    def hold(self) -> None:
        """Keep the current state across a frame that cannot be evaluated."""
        pass

    @abstractmethod
    def _evaluate(self, frame: FaceTrackingData, now: float) -> Optional[Transition]:
        ...

    def _set_state(self, state: str, timestamp: float) -> None:
        self.state = state
        self.state_since = timestamp


# =============================================================================
# Hysteresis Trackers
# =============================================================================

class HysteresisTracker(SignalTracker):
    """
    Two-state tracker with separate entry and exit dwell.
    """

    enter_event: FaceTrackingEventType
    exit_event: Optional[FaceTrackingEventType] = None

    def __init__(
        self,
        thresholds: ResolvedThresholds,
        enter_dwell: Optional[Dwell] = None,
        exit_dwell: Optional[Dwell] = None,
    ) -> None:
        super().__init__(thresholds)
        self.enter_dwell = enter_dwell or self.default_enter_dwell(thresholds)
        self.exit_dwell = exit_dwell or self.default_exit_dwell(thresholds)
        self._streak_start: Optional[float] = None
        self._streak_frames: int = 0

    def default_enter_dwell(self, thresholds: ResolvedThresholds) -> Dwell:
        return INSTANT

    def default_exit_dwell(self, thresholds: ResolvedThresholds) -> Dwell:
        return Dwell.seconds(thresholds.release_seconds)

    @abstractmethod
    def condition(self, frame: FaceTrackingData) -> bool:
        """True when the frame shows the flagged condition."""
        ...

    def describe(self, frame: FaceTrackingData, entered: bool) -> Tuple[Optional[str], FaceTrackingEventData]:
        """Details text and signal values attached to the event."""
        return None, FaceTrackingEventData()

    def hold(self) -> None:
        self._reset_streak()

    def _evaluate(self, frame: FaceTrackingData, now: float) -> Optional[Transition]:
        if self.condition(frame) == self.flagged:
            self._reset_streak()
            return None

        if self._streak_start is None:
            self._streak_start = now
            self._streak_frames = 0
        self._streak_frames += 1

        dwell = self.exit_dwell if self.flagged else self.enter_dwell
        if not dwell.satisfied(self._streak_frames, max(0.0, now - self._streak_start)):
            return None

        entering = not self.flagged
        details, data = self.describe(frame, entering)
        self._set_state(self.flagged_state if entering else self.normal_state, now)
        self._reset_streak()

        event_type = self.enter_event if entering else self.exit_event
        if event_type is None:
            return None
        return Transition(
            tracker=self.name,
            event_type=event_type,
            entered=entering,
            frame_timestamp=frame.timestamp,
            details=details,
            data=data,
        )

    @property
    def streak_ms(self) -> float:
        if self._streak_start is None or self.last_update is None:
            return 0.0
        return max(0.0, self.last_update - self._streak_start)

    def _reset_streak(self) -> None:
        self._streak_start = None
        self._streak_frames = 0


class FacePresenceTracker(HysteresisTracker):
    """Face missing from the frame."""
    name = "face_presence"
    face_gated = False
    normal_state = "face_present"
    flagged_state = "face_absent"
    enter_event = FaceTrackingEventType.FACE_NOT_DETECTED
    exit_event = FaceTrackingEventType.FACE_DETECTED

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.face_absent_seconds)

    def default_exit_dwell(self, thresholds):
        return Dwell.seconds(thresholds.face_present_seconds)

    def condition(self, frame):
        return not frame.face_detected

    def describe(self, frame, entered):
        details = "Face not detected in frame" if entered else "Face visible again"
        return details, FaceTrackingEventData(face_detected=frame.face_detected)


class MultipleFacesTracker(HysteresisTracker):
    """More than one face in view. Unambiguous per frame, so no dwell."""
    name = "multiple_faces"
    face_gated = False
    normal_state = "single_face"
    flagged_state = "multiple_faces"
    enter_event = FaceTrackingEventType.MULTIPLE_FACES_DETECTED

    def default_exit_dwell(self, thresholds):
        return INSTANT

    def condition(self, frame):
        return frame.faces > 1

    def describe(self, frame, entered):
        return (
            f"{frame.faces} faces detected",
            FaceTrackingEventData(face_count=frame.faces, face_detected=frame.face_detected),
        )


class HeadTurnTracker(HysteresisTracker):
    """Head turned away from the screen (yaw or pitch)."""
    name = "head_turn"
    normal_state = "facing_screen"
    flagged_state = "face_away"
    enter_event = FaceTrackingEventType.FACE_AWAY
    exit_event = FaceTrackingEventType.FACE_RETURNED

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.head_turn_seconds)

    def default_exit_dwell(self, thresholds):
        return Dwell.seconds(thresholds.head_return_seconds)

    def condition(self, frame):
        pose = frame.head_pose
        return (
            abs(pose.yaw) > self.thresholds.head_turn_yaw_degrees
            or abs(pose.pitch) > self.thresholds.head_turn_pitch_degrees
        )

    def describe(self, frame, entered):
        pose = frame.head_pose
        details = (
            f"Head angle: yaw={pose.yaw:.0f}° pitch={pose.pitch:.0f}°"
            if entered else "User is facing the screen again"
        )
        return details, FaceTrackingEventData(head_pose=pose, face_detected=True)


class GazeTracker(HysteresisTracker):
    """Eyes not on the screen."""
    name = "gaze"
    normal_state = "looking"
    flagged_state = "looking_away"
    enter_event = FaceTrackingEventType.LOOKING_AWAY
    exit_event = FaceTrackingEventType.LOOKING_BACK

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.gaze_away_seconds)

    def default_exit_dwell(self, thresholds):
        return Dwell.seconds(thresholds.gaze_return_seconds)

    def condition(self, frame):
        return frame.eyes.gaze_direction != GazeDirection.CENTER

    def describe(self, frame, entered):
        gaze = frame.eyes.gaze_direction
        details = f"Gaze direction: {gaze.value}" if entered else "User is looking at the screen"
        return details, FaceTrackingEventData(gaze_direction=gaze)


class EyeClosureTracker(HysteresisTracker):
    """Both eyes closed for longer than a blink."""
    name = "eye_closure"
    normal_state = "eyes_open"
    flagged_state = "eyes_closed_extended"
    enter_event = FaceTrackingEventType.EYES_CLOSED_EXTENDED
    exit_event = FaceTrackingEventType.EYES_OPENED

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.eyes_closed_extended_seconds)

    def default_exit_dwell(self, thresholds):
        return Dwell.seconds(thresholds.eyes_open_seconds)

    def condition(self, frame):
        limit = self.thresholds.eye_closed_openness
        return frame.eyes.left_eye_openness < limit and frame.eyes.right_eye_openness < limit

    def describe(self, frame, entered):
        eyes = frame.eyes
        data = FaceTrackingEventData(
            eye_openness=EyePair(left=eyes.left_eye_openness, right=eyes.right_eye_openness),
        )
        if not entered:
            return "Eyes opened", data
        duration = self.streak_ms / 1000.0
        data = data.model_copy(update={"eye_closure_duration": duration})
        return f"Eyes closed for {duration:.1f}s", data


class SquintTracker(HysteresisTracker):
    """Sustained squinting, as when reading small distant text."""
    name = "squint"
    normal_state = "eyes_relaxed"
    flagged_state = "squinting"
    enter_event = FaceTrackingEventType.SQUINTING_DETECTED

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.squint_seconds)

    def condition(self, frame):
        limit = self.thresholds.squint_threshold
        levels = (frame.eyes.left_squint, frame.eyes.right_squint)
        return any(level is not None and level >= limit for level in levels)

    def describe(self, frame, entered):
        eyes = frame.eyes
        return (
            f"Squint L:{eyes.left_squint or 0:.0f}% R:{eyes.right_squint or 0:.0f}%",
            FaceTrackingEventData(squint_level=EyePair(left=eyes.left_squint, right=eyes.right_squint)),
        )


class HeadTiltTracker(HysteresisTracker):
    """Head rolled sideways."""
    name = "head_tilt"
    normal_state = "normal_head"
    flagged_state = "head_tilted"
    enter_event = FaceTrackingEventType.HEAD_TILTED
    exit_event = FaceTrackingEventType.HEAD_POSITION_NORMAL

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.head_tilt_seconds)

    def condition(self, frame):
        return abs(frame.head_pose.roll) >= self.thresholds.head_tilt_degrees

    def describe(self, frame, entered):
        roll = frame.head_pose.roll
        details = f"Roll: {roll:.0f}°" if entered else "Head position normal"
        return details, FaceTrackingEventData(head_pose=frame.head_pose)


class TalkingTracker(HysteresisTracker):
    """Mouth open, possibly talking to someone off-screen."""
    name = "talking"
    normal_state = "silent"
    flagged_state = "talking"
    enter_event = FaceTrackingEventType.TALKING
    exit_event = FaceTrackingEventType.STOPPED_TALKING

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.talking_seconds)

    def default_exit_dwell(self, thresholds):
        return Dwell.seconds(thresholds.stopped_talking_seconds)

    def condition(self, frame):
        return frame.expression.mouth_open > self.thresholds.talking_mouth_open

    def describe(self, frame, entered):
        mouth = frame.expression.mouth_open
        details = f"Mouth openness: {mouth:.0f}%" if entered else "Mouth closed"
        return details, FaceTrackingEventData(mouth_openness=mouth)


class ConfusionTracker(HysteresisTracker):
    """Inner brow raised while brows are pulled down."""
    name = "confusion"
    normal_state = "neutral"
    flagged_state = "confused"
    enter_event = FaceTrackingEventType.EXPRESSION_CONFUSED

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.confusion_seconds)

    def condition(self, frame):
        expr = frame.expression
        return (
            expr.brow_down is not None
            and expr.inner_brow >= self.thresholds.confusion_brow_inner_up
            and expr.brow_down >= self.thresholds.confusion_brow_down
        )

    def describe(self, frame, entered):
        expr = frame.expression
        return (
            f"Brow inner up {expr.inner_brow:.0f}%, brow down {expr.brow_down or 0:.0f}%",
            FaceTrackingEventData(brow_inner_up=expr.inner_brow, brow_down=expr.brow_down),
        )


class LipReadingTracker(HysteresisTracker):
    """Lips moving while the jaw stays nearly shut: silently mouthing words."""
    name = "lip_reading"
    normal_state = "lips_still"
    flagged_state = "mouthing"
    enter_event = FaceTrackingEventType.LIP_READING_DETECTED

    def default_enter_dwell(self, thresholds):
        return Dwell.seconds(thresholds.lip_reading_seconds)

    def condition(self, frame):
        expr = frame.expression
        return (
            expr.lip_movement is not None
            and expr.lip_movement >= self.thresholds.lip_movement_threshold
            and expr.mouth_open < self.thresholds.jaw_open_max
        )

    def describe(self, frame, entered):
        expr = frame.expression
        return (
            f"Lip movement {expr.lip_movement or 0:.0f}% with jaw open {expr.mouth_open:.0f}%",
            FaceTrackingEventData(lip_movement=expr.lip_movement, mouth_openness=expr.mouth_open),
        )


# =============================================================================
# Rate Trackers
# =============================================================================

class RateTracker(SignalTracker):
    """
    Fires once when more than `limit` occurrences fall inside the trailing
    window, and re-arms when the count is back at or below the limit.
    """

    event: FaceTrackingEventType

    def __init__(self, thresholds: ResolvedThresholds) -> None:
        super().__init__(thresholds)
        self._occurrences: Deque[float] = deque()

    @property
    @abstractmethod
    def window_ms(self) -> float:
        ...

    @property
    @abstractmethod
    def limit(self) -> float:
        ...

    @abstractmethod
    def occurred(self, frame: FaceTrackingData) -> bool:
        """True when this frame contributes one occurrence."""
        ...

    def describe(self, frame: FaceTrackingData, count: int) -> Tuple[Optional[str], FaceTrackingEventData]:
        return None, FaceTrackingEventData()

    @property
    def count(self) -> int:
        return len(self._occurrences)

    def _evaluate(self, frame: FaceTrackingData, now: float) -> Optional[Transition]:
        if self.occurred(frame):
            self._occurrences.append(now)
        horizon = now - self.window_ms
        while self._occurrences and self._occurrences[0] <= horizon:
            self._occurrences.popleft()

        count = len(self._occurrences)
        if count > self.limit and not self.flagged:
            details, data = self.describe(frame, count)
            self._set_state(self.flagged_state, now)
            return Transition(
                tracker=self.name,
                event_type=self.event,
                entered=True,
                frame_timestamp=frame.timestamp,
                details=details,
                data=data,
            )
        if count <= self.limit and self.flagged:
            self._set_state(self.normal_state, now)
        return None


class BlinkRateTracker(RateTracker):
    """Blink onsets per minute above the configured ceiling."""
    name = "blink_rate"
    normal_state = "blink_rate_normal"
    flagged_state = "blinking_excessive"
    event = FaceTrackingEventType.EXCESSIVE_BLINKING

    def __init__(self, thresholds: ResolvedThresholds) -> None:
        super().__init__(thresholds)
        self._was_blinking = False

    @property
    def window_ms(self) -> float:
        return self.thresholds.blink_window_seconds * 1000.0

    @property
    def limit(self) -> float:
        return self.thresholds.excessive_blink_per_minute * self.thresholds.blink_window_seconds / 60.0

    def hold(self) -> None:
        self._was_blinking = False

    def occurred(self, frame):
        blinking = frame.eyes.is_blinking
        onset = blinking and not self._was_blinking
        self._was_blinking = blinking
        return onset

    def describe(self, frame, count):
        per_minute = count * 60000.0 / self.window_ms if self.window_ms > 0 else float(count)
        return (
            f"{per_minute:.0f} blinks/min",
            FaceTrackingEventData(blink_rate=per_minute),
        )


class HeadMovementTracker(RateTracker):
    """Frequent head direction changes, as when glancing between screens."""
    name = "head_movement"
    normal_state = "head_steady"
    flagged_state = "head_moving_excessively"
    event = FaceTrackingEventType.HEAD_MOVEMENT_EXCESSIVE

    def __init__(self, thresholds: ResolvedThresholds) -> None:
        super().__init__(thresholds)
        self._last_direction: Optional[Tuple[int, int]] = None

    @property
    def window_ms(self) -> float:
        return self.thresholds.head_movement_window_seconds * 1000.0

    @property
    def limit(self) -> float:
        return self.thresholds.head_movement_count

    def direction(self, frame: FaceTrackingData) -> Tuple[int, int]:
        """Head direction bucket: (-1/0/1 for yaw, -1/0/1 for pitch)."""
        step = self.thresholds.head_movement_degrees
        pose = frame.head_pose

        def bucket(angle: float) -> int:
            if angle > step:
                return 1
            if angle < -step:
                return -1
            return 0

        return bucket(pose.yaw), bucket(pose.pitch)

    def occurred(self, frame):
        direction = self.direction(frame)
        changed = self._last_direction is not None and direction != self._last_direction
        self._last_direction = direction
        return changed

    def describe(self, frame, count):
        return (
            f"{count} head movements in {self.window_ms / 1000.0:.0f}s",
            FaceTrackingEventData(head_movement_count=count, head_pose=frame.head_pose),
        )


# =============================================================================
# Registration
# =============================================================================

def build_trackers(thresholds: ResolvedThresholds) -> List[SignalTracker]:
    """
    Create one tracker per monitored condition.

    The returned order is the registration order, which fixes the order of
    events emitted for the same frame.
    """
    return [
        FacePresenceTracker(thresholds),
        MultipleFacesTracker(thresholds),
        HeadTurnTracker(thresholds),
        GazeTracker(thresholds),
        EyeClosureTracker(thresholds),
        BlinkRateTracker(thresholds),
        SquintTracker(thresholds),
        HeadTiltTracker(thresholds),
        HeadMovementTracker(thresholds),
        TalkingTracker(thresholds),
        ConfusionTracker(thresholds),
        LipReadingTracker(thresholds),
    ]
