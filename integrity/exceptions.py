"""
Integrity Engine Exceptions

Caller-facing failures. Malformed input is never raised; it is logged and
discarded at the ingestion boundary.
"""


class IntegrityEngineError(Exception):
    """Base class for engine errors reported to the caller."""
    pass


class UnknownSessionError(IntegrityEngineError):
    """Raised when an operation references an unknown or torn-down session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id


class SessionExistsError(IntegrityEngineError):
    """Raised when a session id is registered twice."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session already exists: {session_id}")
        self.session_id = session_id


class SessionMismatchError(IntegrityEngineError):
    """Raised when a keystroke batch is delivered to the wrong session."""

    def __init__(self, expected: str, received: str) -> None:
        super().__init__(
            f"Batch for session {received} delivered to session {expected}"
        )
        self.expected = expected
        self.received = received
