"""
Face Tracking Event Emitter

Turns tracker transitions into FaceTrackingEventPayload objects and pushes
them to registered listeners.

- EVENT_CATALOG: immutable event type -> (message, severity) table
- EventEmitter: stamps, deduplicates per tracker, and fans out to listeners
"""

import logging
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from integrity.models.trackers import Transition
from integrity.schemas.outputs import (
    FaceTrackingEventPayload,
    FaceTrackingEventType,
    TrackingEventSeverity,
)


logger = logging.getLogger(__name__)


EventListener = Callable[[FaceTrackingEventPayload], None]


# =============================================================================
# Event Catalog
# =============================================================================

@dataclass(frozen=True)
class EventTemplate:
    message: str
    severity: TrackingEventSeverity


_T = FaceTrackingEventType
_INFO = TrackingEventSeverity.INFO
_WARNING = TrackingEventSeverity.WARNING
_SUCCESS = TrackingEventSeverity.SUCCESS

EVENT_CATALOG: Mapping[FaceTrackingEventType, EventTemplate] = MappingProxyType({
    # Face position
    _T.FACE_AWAY: EventTemplate("Face Turned Away", _WARNING),
    _T.FACE_RETURNED: EventTemplate("Face Returned to Screen", _SUCCESS),
    _T.FACE_NOT_DETECTED: EventTemplate("Face Not Detected", _WARNING),
    _T.FACE_DETECTED: EventTemplate("Face Detected", _SUCCESS),
    _T.MULTIPLE_FACES_DETECTED: EventTemplate("Multiple Faces Detected", _WARNING),
    # Gaze
    _T.LOOKING_AWAY: EventTemplate("Eyes Looking Away", _WARNING),
    _T.LOOKING_BACK: EventTemplate("Eyes Returned to Screen", _SUCCESS),
    # Eye state
    _T.EYES_CLOSED_EXTENDED: EventTemplate("Eyes Closed For Extended Period", _WARNING),
    _T.EYES_OPENED: EventTemplate("Eyes Opened", _INFO),
    _T.EXCESSIVE_BLINKING: EventTemplate("Excessive Blinking", _WARNING),
    _T.SQUINTING_DETECTED: EventTemplate("Squinting Detected", _INFO),
    # Speaking
    _T.TALKING: EventTemplate("Possible Talking Detected", _WARNING),
    _T.STOPPED_TALKING: EventTemplate("Talking Stopped", _INFO),
    # Head movement
    _T.HEAD_MOVEMENT_EXCESSIVE: EventTemplate("Excessive Head Movement", _WARNING),
    _T.HEAD_TILTED: EventTemplate("Head Tilted", _INFO),
    _T.HEAD_POSITION_NORMAL: EventTemplate("Head Position Normal", _SUCCESS),
    # Expression
    _T.EXPRESSION_CONFUSED: EventTemplate("Confused Expression", _INFO),
    _T.LIP_READING_DETECTED: EventTemplate("Possible Silent Reading Detected", _WARNING),
})


# =============================================================================
# Emitter
# =============================================================================

class EventEmitter:
    """
    Stamps tracker transitions and publishes them.

    Attributes:
        emitted_count: Number of events published so far.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        # Wall clock in seconds; events carry milliseconds
        self._clock = clock
        self._last_emitted: Dict[str, FaceTrackingEventType] = {}
        self._listeners: List[EventListener] = []
        self.emitted_count: int = 0

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # -------------------------------------------------------------------------
    # Emission
    # -------------------------------------------------------------------------

    def reset(self, tracker: str) -> None:
        """Forget the last event emitted by a tracker that re-armed without one."""
        self._last_emitted.pop(tracker, None)

    def emit(self, transition: Transition) -> Optional[FaceTrackingEventPayload]:
        """
        Publish one transition.

        Returns:
            The emitted payload, or None when the same tracker already
            emitted this event type last.
        """
        if self._last_emitted.get(transition.tracker) == transition.event_type:
            logger.debug(
                f"Suppressed repeated {transition.event_type.value} from tracker {transition.tracker}"
            )
            return None
        self._last_emitted[transition.tracker] = transition.event_type

        template = EVENT_CATALOG[transition.event_type]
        event = FaceTrackingEventPayload(
            type=transition.event_type,
            timestamp=self._clock() * 1000.0,
            frame_timestamp=transition.frame_timestamp,
            message=template.message,
            severity=template.severity,
            details=transition.details,
            data=transition.data,
        )
        self.emitted_count += 1
        self._notify(event)
        return event

    def emit_all(self, transitions: Iterable[Transition]) -> List[FaceTrackingEventPayload]:
        """Publish transitions in the given order."""
        events = []
        for transition in transitions:
            event = self.emit(transition)
            if event is not None:
                events.append(event)
        return events

    def _notify(self, event: FaceTrackingEventPayload) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {event.type.value}: {e}")
