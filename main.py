"""
Integrity Engine API

FastAPI application exposing:
- POST /sessions → 201 (session status)
- DELETE /sessions/{session_id} → 204 (no body)
- GET /sessions/{session_id} → session status
- POST /stream/keystrokes → batch acknowledgement
- POST /stream/face/{session_id} → emitted face tracking events
- GET /sessions/{session_id}/typing-analysis → typing analysis
"""

from contextlib import asynccontextmanager
import logging
from typing import Any, List, Optional

from fastapi import Body, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from integrity.config import load_settings
from integrity.exceptions import (
    SessionExistsError,
    SessionMismatchError,
    UnknownSessionError,
)
from integrity.processors.keystrokes import parse_batch, rejected_batch
from integrity.schemas.inputs import CreateSessionPayload
from integrity.schemas.outputs import (
    FaceTrackingEventPayload,
    KeystrokeBatchResponse,
    SessionStatus,
    TypingAnalysis,
)
from integrity.session_manager import SessionManager


VERSION = "1.0.0"

settings = load_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """Application state container."""
    manager: Optional[SessionManager] = None


state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Integrity Engine API...")
    state.manager = SessionManager(settings)
    logger.info("Integrity Engine ready")

    yield

    # Shutdown
    logger.info("Shutting down Integrity Engine API...")
    await state.manager.shutdown()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Integrity Engine",
    description="Behavioral integrity monitoring: typing rhythm and face tracking",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _not_found(e: UnknownSessionError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


# =============================================================================
# Session Endpoints
# =============================================================================

@app.post("/sessions", response_model=SessionStatus, status_code=status.HTTP_201_CREATED)
async def create_session(payload: CreateSessionPayload):
    """
    Start monitoring a session.

    - Thresholds are optional; missing or invalid values use defaults
    - A session id can only be live once
    """
    try:
        return await state.manager.create_session(payload.session_id, payload.thresholds)
    except SessionExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(session_id: str):
    """Tear down a session and discard its state."""
    try:
        await state.manager.close_session(session_id)
    except UnknownSessionError as e:
        raise _not_found(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/sessions/{session_id}", response_model=SessionStatus)
async def session_status(session_id: str):
    """Session counts, tracker states and staleness."""
    try:
        return await state.manager.status(session_id)
    except UnknownSessionError as e:
        raise _not_found(e)


@app.get("/sessions/{session_id}/typing-analysis", response_model=TypingAnalysis)
async def typing_analysis(session_id: str):
    """Compute the typing analysis over keystrokes received so far."""
    try:
        return await state.manager.typing_analysis(session_id)
    except UnknownSessionError as e:
        raise _not_found(e)
    except Exception as e:
        logger.error(f"Typing analysis error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal error during typing analysis"
        )


# =============================================================================
# Stream Endpoints
# =============================================================================

@app.post("/stream/keystrokes", response_model=KeystrokeBatchResponse)
async def stream_keystrokes(payload: Any = Body(None)):
    """
    Ingest one keystroke batch.

    - Batches are folded in batch_index order
    - Duplicate or non-monotonic batches are acknowledged with success=false
    - Malformed batches are discarded and acknowledged with success=false
    """
    batch = parse_batch(payload)
    if batch is None:
        return rejected_batch(payload)
    try:
        return await state.manager.ingest_batch(batch)
    except UnknownSessionError as e:
        raise _not_found(e)
    except SessionMismatchError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.post("/stream/face/{session_id}", response_model=List[FaceTrackingEventPayload])
async def stream_face(session_id: str, frame: Any = Body(None)):
    """
    Ingest one face tracking frame.

    - Returns the events this frame triggered (often none)
    - Malformed frames are discarded and return an empty list
    """
    try:
        return await state.manager.ingest_frame(session_id, frame)
    except UnknownSessionError as e:
        raise _not_found(e)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
