"""
Face Frame Ingestor

Validates incoming face tracking frames, feeds them to every tracker in
registration order and hands the resulting transitions to the emitter.
A structurally invalid frame is dropped without touching tracker state.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from integrity.events import EventEmitter
from integrity.models.trackers import SignalTracker, Transition
from integrity.schemas.inputs import FaceTrackingData
from integrity.schemas.outputs import FaceTrackingEventPayload


logger = logging.getLogger(__name__)


FrameInput = Union[FaceTrackingData, Mapping[str, Any]]


class FaceFrameIngestor:
    """
    Drives a session's trackers with face frames.

    Attributes:
        frames_processed: Frames that reached the trackers.
        frames_discarded: Frames dropped as malformed.
        last_frame_timestamp: Timestamp of the latest accepted frame.
    """

    def __init__(self, trackers: Sequence[SignalTracker], emitter: EventEmitter) -> None:
        self.trackers = list(trackers)
        self.emitter = emitter
        self.frames_processed: int = 0
        self.frames_discarded: int = 0
        self.last_frame_timestamp: Optional[float] = None

    def parse(self, frame: FrameInput) -> Optional[FaceTrackingData]:
        """Validate a raw frame; returns None (and logs) when malformed."""
        if isinstance(frame, FaceTrackingData):
            return frame
        try:
            return FaceTrackingData.model_validate(frame)
        except ValidationError as e:
            self.frames_discarded += 1
            logger.warning(f"Discarding malformed face frame: {e.error_count()} validation error(s)")
            return None

    def ingest(self, frame: FrameInput) -> List[FaceTrackingEventPayload]:
        """
        Process one frame.

        Returns:
            Events emitted for this frame, in tracker registration order.
        """
        data = self.parse(frame)
        if data is None:
            return []

        transitions: List[Transition] = []
        for tracker in self.trackers:
            was_flagged = tracker.flagged
            transition = tracker.update(data)
            if transition is not None:
                transitions.append(transition)
            elif was_flagged and not tracker.flagged:
                # Silent re-arm: the next entry is a new occurrence
                self.emitter.reset(tracker.name)

        self.frames_processed += 1
        self.last_frame_timestamp = data.timestamp
        return self.emitter.emit_all(transitions)

    def tracker_states(self) -> Dict[str, str]:
        return {tracker.name: tracker.state for tracker in self.trackers}
