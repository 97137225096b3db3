"""
Session Analyzer

Owns every piece of per-session state: the keystroke aggregator, the face
trackers and the event emitter. All operations are synchronous and free of
I/O; concurrency is handled one level up by the SessionWorker, which is the
only caller in a running service.

Usage:
    analyzer = SessionAnalyzer("sess_1", thresholds={"talkingMouthOpen": 40})
    analyzer.ingest_batch(batch)
    events = analyzer.ingest_frame(frame)
    analysis = analyzer.typing_analysis()
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from integrity.config import EngineSettings, ThresholdsInput, resolve_thresholds
from integrity.events import EventEmitter, EventListener
from integrity.models.trackers import build_trackers
from integrity.processors.face import FaceFrameIngestor, FrameInput
from integrity.processors.keystrokes import KeystrokeAggregator
from integrity.processors.typing_metrics import TypingMetricsCalculator
from integrity.schemas.inputs import KeystrokeBatchPayload
from integrity.schemas.outputs import (
    FaceTrackingEventPayload,
    KeystrokeBatchResponse,
    SessionStatus,
    TypingAnalysis,
)


logger = logging.getLogger(__name__)


class SessionAnalyzer:
    """
    Per-session integrity analysis.

    Attributes:
        session_id: Session this analyzer belongs to.
        thresholds: Resolved face tracking thresholds, fixed for the session.
        settings: Keystroke analysis settings.
    """

    def __init__(
        self,
        session_id: str,
        thresholds: ThresholdsInput = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session_id = session_id
        self.thresholds = resolve_thresholds(thresholds)
        self.settings = settings or EngineSettings()
        self._clock = clock

        self.aggregator = KeystrokeAggregator(session_id, self.settings, clock=clock)
        self.calculator = TypingMetricsCalculator(self.settings)
        self.emitter = EventEmitter(clock=clock)
        self.ingestor = FaceFrameIngestor(build_trackers(self.thresholds), self.emitter)
        self._last_frame_at: Optional[float] = None

    # -------------------------------------------------------------------------
    # Keystrokes
    # -------------------------------------------------------------------------

    def ingest_batch(self, batch: KeystrokeBatchPayload) -> KeystrokeBatchResponse:
        """Fold one keystroke batch (raises SessionMismatchError for foreign batches)."""
        return self.aggregator.ingest(batch)

    def typing_analysis(
        self,
        final: bool = False,
        analyzed_at: Optional[datetime] = None,
    ) -> TypingAnalysis:
        """
        Analyze the keystrokes folded so far.

        Args:
            final: Abandon every outstanding batch gap first (session end).
            analyzed_at: Analysis timestamp; defaults to the session clock.

        Returns:
            TypingAnalysis over the current log. Two calls with no batch
            or gap expiry in between return identical metrics; only
            `analyzed_at` moves with the clock unless it is pinned.
        """
        if final:
            self.aggregator.flush()
        else:
            self.aggregator.expire_gaps()
        if analyzed_at is None:
            analyzed_at = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        return self.calculator.compute(self.aggregator.snapshot(), analyzed_at=analyzed_at)

    # -------------------------------------------------------------------------
    # Face Frames
    # -------------------------------------------------------------------------

    def ingest_frame(self, frame: FrameInput) -> List[FaceTrackingEventPayload]:
        """Process one face frame; malformed frames yield no events."""
        processed = self.ingestor.frames_processed
        events = self.ingestor.ingest(frame)
        if self.ingestor.frames_processed != processed:
            self._last_frame_at = self._clock()
        for event in events:
            logger.info(f"Session {self.session_id}: {event.type.value} ({event.message})")
        return events

    def add_listener(self, listener: EventListener) -> None:
        self.emitter.add_listener(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self.emitter.remove_listener(listener)

    def tracker_states(self) -> Dict[str, str]:
        return self.ingestor.tracker_states()

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def status(self) -> SessionStatus:
        """Counts and staleness for this session."""
        now = self._clock()
        last_batch_at = self.aggregator.last_ingest_at
        return SessionStatus(
            session_id=self.session_id,
            total_keystrokes=len(self.aggregator.keystrokes),
            total_batches=self.aggregator.total_batches,
            pending_batches=self.aggregator.pending_count,
            frames_processed=self.ingestor.frames_processed,
            frames_discarded=self.ingestor.frames_discarded,
            events_emitted=self.emitter.emitted_count,
            tracker_states=self.tracker_states(),
            seconds_since_last_frame=None if self._last_frame_at is None else now - self._last_frame_at,
            seconds_since_last_batch=None if last_batch_at is None else now - last_batch_at,
        )
