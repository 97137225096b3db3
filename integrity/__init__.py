"""
Behavioral Integrity Monitoring Engine

Central module exports for keystroke rhythm analysis and face tracking
integrity events.
"""

from integrity.analyzer import SessionAnalyzer
from integrity.session_manager import SessionManager, SessionWorker

__all__ = [
    "SessionAnalyzer",
    "SessionManager",
    "SessionWorker",
]
