"""
Session Workers

Each session's SessionAnalyzer is owned by exactly one SessionWorker, an
asyncio actor that applies queued operations strictly in arrival order.
Different sessions run on independent tasks and share nothing.

Usage:
    manager = SessionManager(settings)
    await manager.create_session("sess_1")
    response = await manager.ingest_batch(batch)
    events = await manager.ingest_frame("sess_1", frame)
    analysis = await manager.end_session("sess_1")
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from integrity.analyzer import SessionAnalyzer
from integrity.config import EngineSettings, ThresholdsInput
from integrity.events import EventListener
from integrity.exceptions import SessionExistsError, UnknownSessionError
from integrity.processors.face import FrameInput
from integrity.schemas.inputs import KeystrokeBatchPayload
from integrity.schemas.outputs import (
    FaceTrackingEventPayload,
    KeystrokeBatchResponse,
    SessionStatus,
    TypingAnalysis,
)


logger = logging.getLogger(__name__)


Operation = Callable[[SessionAnalyzer], Any]


@dataclass
class _Message:
    operation: Operation
    reply: asyncio.Future


# =============================================================================
# Session Worker
# =============================================================================

class SessionWorker:
    """
    Actor owning one SessionAnalyzer.

    The analyzer is only ever touched from the worker task, so operations
    never interleave. Callers await a future per message.
    """

    def __init__(self, analyzer: SessionAnalyzer, queue_size: int = 1000) -> None:
        self.analyzer = analyzer
        self.session_id = analyzer.session_id
        self._queue: asyncio.Queue[_Message] = asyncio.Queue(maxsize=max(0, queue_size))
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"session-worker-{self.session_id}")

    async def call(self, operation: Operation) -> Any:
        """
        Queue an operation and wait for its result.

        Raises:
            UnknownSessionError: the worker was stopped before the operation ran.
        """
        if self._closed:
            raise UnknownSessionError(self.session_id)
        reply = asyncio.get_running_loop().create_future()
        await self._queue.put(_Message(operation, reply))
        if self._closed and not reply.done():
            reply.set_exception(UnknownSessionError(self.session_id))
        return await reply

    async def stop(self) -> None:
        """Cancel the worker and fail every queued operation."""
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        while not self._queue.empty():
            message = self._queue.get_nowait()
            if not message.reply.done():
                message.reply.set_exception(UnknownSessionError(self.session_id))

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                # Caller gave up waiting
                if message.reply.done():
                    continue
                try:
                    result = message.operation(self.analyzer)
                except Exception as e:
                    message.reply.set_exception(e)
                else:
                    message.reply.set_result(result)
            finally:
                self._queue.task_done()


# =============================================================================
# Session Manager
# =============================================================================

class SessionManager:
    """
    Creates, routes to and tears down session workers.

    Attributes:
        settings: Shared keystroke analysis settings.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or EngineSettings()
        self._clock = clock
        self._workers: Dict[str, SessionWorker] = {}

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create_session(
        self,
        session_id: str,
        thresholds: ThresholdsInput = None,
    ) -> SessionStatus:
        """
        Start a worker for a new session.

        Raises:
            SessionExistsError: a live session already uses this id.
        """
        if session_id in self._workers:
            raise SessionExistsError(session_id)

        analyzer = SessionAnalyzer(
            session_id,
            thresholds=thresholds,
            settings=self.settings,
            clock=self._clock,
        )
        worker = SessionWorker(analyzer, queue_size=self.settings.queue_size)
        self._workers[session_id] = worker
        worker.start()

        logger.info(f"Session {session_id} created")
        return analyzer.status()

    async def close_session(self, session_id: str) -> None:
        """Tear down a session immediately, discarding its state."""
        worker = self._workers.pop(session_id, None)
        if worker is None:
            raise UnknownSessionError(session_id)
        await worker.stop()
        logger.info(f"Session {session_id} torn down")

    async def end_session(self, session_id: str) -> TypingAnalysis:
        """Produce the final typing analysis, then tear the session down."""
        worker = self.get(session_id)
        analysis = await worker.call(lambda a: a.typing_analysis(final=True))
        await self.close_session(session_id)
        logger.info(
            f"Session {session_id} ended: risk {analysis.risk_level.value} ({analysis.risk_score})"
        )
        return analysis

    async def shutdown(self) -> None:
        """Tear down every session."""
        for session_id in list(self._workers):
            await self.close_session(session_id)

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def get(self, session_id: str) -> SessionWorker:
        worker = self._workers.get(session_id)
        if worker is None:
            raise UnknownSessionError(session_id)
        return worker

    def session_ids(self) -> List[str]:
        return list(self._workers)

    async def ingest_batch(self, batch: KeystrokeBatchPayload) -> KeystrokeBatchResponse:
        worker = self.get(batch.session_id)
        return await worker.call(lambda a: a.ingest_batch(batch))

    async def ingest_frame(self, session_id: str, frame: FrameInput) -> List[FaceTrackingEventPayload]:
        worker = self.get(session_id)
        return await worker.call(lambda a: a.ingest_frame(frame))

    async def typing_analysis(self, session_id: str) -> TypingAnalysis:
        worker = self.get(session_id)
        return await worker.call(lambda a: a.typing_analysis())

    async def status(self, session_id: str) -> SessionStatus:
        worker = self.get(session_id)
        return await worker.call(lambda a: a.status())

    async def add_listener(self, session_id: str, listener: EventListener) -> None:
        """Subscribe to a session's face tracking event stream."""
        worker = self.get(session_id)
        await worker.call(lambda a: a.add_listener(listener))
