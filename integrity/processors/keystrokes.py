"""
Keystroke Batch Aggregator

Folds irregular keystroke batches into a session's cumulative, ordered
keystroke log.

Batches are buffered and folded strictly by batch_index. A missing index
holds back everything behind it until either enough batches queue up behind
the gap or the oldest buffered batch has waited too long; the gap is then
abandoned and recorded. Statistics are never computed here.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from integrity.config import EngineSettings
from integrity.exceptions import SessionMismatchError
from integrity.schemas.inputs import Keystroke, KeystrokeBatchPayload
from integrity.schemas.outputs import KeystrokeBatchResponse


logger = logging.getLogger(__name__)


# =============================================================================
# Log Snapshot
# =============================================================================

@dataclass(frozen=True)
class KeystrokeLog:
    """Immutable view of the folded keystroke log at one point in time."""
    session_id: str
    keystrokes: Tuple[Keystroke, ...]
    total_batches: int
    start_time: Optional[float]
    end_time: Optional[float]
    missing_batches: Tuple[int, ...] = ()
    rejected_batches: Tuple[int, ...] = ()

    @property
    def duration_ms(self) -> float:
        """Session duration from first batch start to last batch end."""
        if self.start_time is None or self.end_time is None:
            if len(self.keystrokes) < 2:
                return 0.0
            return max(0.0, self.keystrokes[-1].timestamp - self.keystrokes[0].timestamp)
        return max(0.0, self.end_time - self.start_time)


# =============================================================================
# Batch Validation
# =============================================================================

def parse_batch(raw: Any) -> Optional[KeystrokeBatchPayload]:
    """Validate a raw batch; returns None (and logs) when malformed."""
    if isinstance(raw, KeystrokeBatchPayload):
        return raw
    try:
        return KeystrokeBatchPayload.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Discarding malformed keystroke batch: {e.error_count()} validation error(s)")
        return None


def rejected_batch(raw: Any) -> KeystrokeBatchResponse:
    """
    Acknowledgement for a batch that failed validation.

    Echoes the batch index when the raw payload carries a usable one,
    otherwise reports -1.
    """
    batch_index = -1
    if isinstance(raw, dict):
        value = raw.get("batchIndex", raw.get("batch_index"))
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            batch_index = value
    return KeystrokeBatchResponse(success=False, batch_index=batch_index, keystroke_count=0)


# =============================================================================
# Aggregator
# =============================================================================

class KeystrokeAggregator:
    """
    Orders keystroke batches by index and extends the session log.

    Attributes:
        session_id: Owning session; batches for other sessions are refused.
    """

    def __init__(
        self,
        session_id: str,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session_id = session_id
        self.settings = settings or EngineSettings()
        self._clock = clock

        self._keystrokes: List[Keystroke] = []
        self._next_index: int = self.settings.first_batch_index
        # batch_index -> (batch or None for a rejected index, arrival seconds)
        self._pending: Dict[int, Tuple[Optional[KeystrokeBatchPayload], float]] = {}
        self._missing: List[int] = []
        self._rejected: List[int] = []
        self._folded_batches: int = 0
        self._start_time: Optional[float] = None
        self._end_time: Optional[float] = None
        self.last_ingest_at: Optional[float] = None

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def ingest(self, batch: KeystrokeBatchPayload) -> KeystrokeBatchResponse:
        """
        Accept one batch.

        Raises:
            SessionMismatchError: batch belongs to another session.

        Returns:
            KeystrokeBatchResponse; success is False for duplicate, stale or
            non-monotonic batches, which leave the log untouched.
        """
        if batch.session_id != self.session_id:
            raise SessionMismatchError(self.session_id, batch.session_id)

        now = self._clock()
        self.last_ingest_at = now
        index = batch.batch_index
        count = len(batch.keystrokes)

        if index < self._next_index or index in self._pending:
            if index in self._missing:
                logger.warning(
                    f"Stale keystroke batch #{index} for session {self.session_id}: "
                    f"gap already abandoned"
                )
            else:
                logger.warning(f"Duplicate keystroke batch #{index} for session {self.session_id}")
            return KeystrokeBatchResponse(success=False, batch_index=index, keystroke_count=count)

        if not batch.is_monotonic():
            logger.warning(
                f"Rejected keystroke batch #{index} for session {self.session_id}: "
                f"timestamps are not monotonic"
            )
            self._rejected.append(index)
            self._pending[index] = (None, now)
            self._drain(now)
            return KeystrokeBatchResponse(success=False, batch_index=index, keystroke_count=count)

        if index > self._next_index:
            logger.info(
                f"Out-of-order keyboard batch buffered: expected {self._next_index}, "
                f"got {index} (session {self.session_id})"
            )
        self._pending[index] = (batch, now)
        self._drain(now)

        logger.debug(f"Accepted keystroke batch #{index} for session {self.session_id} ({count} keystrokes)")
        return KeystrokeBatchResponse(success=True, batch_index=index, keystroke_count=count)

    def expire_gaps(self) -> None:
        """Abandon gaps whose bounded wait has elapsed."""
        self._drain(self._clock())

    def flush(self) -> None:
        """Fold every buffered batch, abandoning all outstanding gaps."""
        while self._pending:
            self._skip_to(min(self._pending))
            self._fold_contiguous()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    @property
    def keystrokes(self) -> Tuple[Keystroke, ...]:
        return tuple(self._keystrokes)

    @property
    def total_batches(self) -> int:
        return self._folded_batches

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def missing_batches(self) -> Tuple[int, ...]:
        return tuple(self._missing)

    @property
    def rejected_batches(self) -> Tuple[int, ...]:
        return tuple(self._rejected)

    def snapshot(self) -> KeystrokeLog:
        """Return an immutable view of the folded log."""
        return KeystrokeLog(
            session_id=self.session_id,
            keystrokes=tuple(self._keystrokes),
            total_batches=self._folded_batches,
            start_time=self._start_time,
            end_time=self._end_time,
            missing_batches=tuple(self._missing),
            rejected_batches=tuple(self._rejected),
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _drain(self, now: float) -> None:
        self._fold_contiguous()
        while self._pending and self._gap_expired(now):
            self._skip_to(min(self._pending))
            self._fold_contiguous()

    def _gap_expired(self, now: float) -> bool:
        if len(self._pending) >= self.settings.max_pending_batches:
            return True
        oldest_arrival = min(arrival for _, arrival in self._pending.values())
        return (now - oldest_arrival) * 1000.0 >= self.settings.gap_timeout_ms

    def _skip_to(self, index: int) -> None:
        if index <= self._next_index:
            return
        skipped = list(range(self._next_index, index))
        logger.warning(
            f"Abandoning keystroke batch gap for session {self.session_id}: "
            f"missing {skipped}"
        )
        self._missing.extend(skipped)
        self._next_index = index

    def _fold_contiguous(self) -> None:
        while self._next_index in self._pending:
            batch, _ = self._pending.pop(self._next_index)
            self._next_index += 1
            if batch is None:
                continue
            self._keystrokes.extend(batch.keystrokes)
            self._folded_batches += 1
            if self._start_time is None or batch.start_time < self._start_time:
                self._start_time = batch.start_time
            if self._end_time is None or batch.end_time > self._end_time:
                self._end_time = batch.end_time
