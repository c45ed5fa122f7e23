"""
Sessions Package

In-memory storage of per-session story state.

Components:
- SessionState: State of one story session
- InMemorySessionStore: Concurrent map of session id -> SessionState

Usage:
    from sessions.session_store import InMemorySessionStore, SessionState
"""

from sessions.session_store import InMemorySessionStore, SessionState

__all__ = [
    "InMemorySessionStore",
    "SessionState",
]
