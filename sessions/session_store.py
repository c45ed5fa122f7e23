"""
Session Store Module

In-memory store of per-session story state.

The store map is guarded by a single lock used only for insert/remove, so
lookups for different sessions never wait on each other's mutations. Each
SessionState carries its own lock; every mutation of a state runs under that
lock. Locks are plain threading locks and are never held across an await, so
the store is safe from threads and from asyncio tasks alike.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, TypeVar

from llm_story_core.types import ChatMessage
from logging_config import StructuredLoggerAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SessionState:
    """
    State of one ongoing story session.

    Attributes:
        session_id: Stable key of the session
        messages: Conversation sent upstream, in order (append-only)
        story_parts: Story segments generated so far
        options: Choices offered for the current turn
        primary_objective: Current story objective
        progress: Completion ratio in [0, 1]
        rating: Rating of the last player choice (GOOD / NEUTRAL / BAD)
        image_paths: Files of generated scene images
        created_at: Creation time (epoch seconds)
        updated_at: Time of the last mutation (epoch seconds)
    """

    session_id: str
    messages: List[ChatMessage] = field(default_factory=list)
    story_parts: List[str] = field(default_factory=list)
    options: List[str] = field(default_factory=list)
    primary_objective: str = ""
    progress: float = 0.0
    rating: str = ""
    image_paths: List[str] = field(default_factory=list)
    created_at: float = 0.0
    updated_at: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __deepcopy__(self, memo: dict) -> "SessionState":
        # Locks can't be copied; the copy gets its own
        clone = SessionState(
            session_id=self.session_id,
            messages=list(self.messages),
            story_parts=list(self.story_parts),
            options=list(self.options),
            primary_objective=self.primary_objective,
            progress=self.progress,
            rating=self.rating,
            image_paths=list(self.image_paths),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
        memo[id(self)] = clone
        return clone

    @property
    def lock(self) -> threading.Lock:
        return self._lock


class InMemorySessionStore:
    """
    Concurrent map of session id -> SessionState.

    No operation raises for an unknown id: reads return None or empty values,
    and get_or_create/update create the session lazily.

    Args:
        clock: Returns the current time in epoch seconds (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._sessions: Dict[str, SessionState] = {}
        self._map_lock = threading.Lock()
        self._clock = clock

    def get_or_create(self, session_id: str) -> SessionState:
        """
        Return the state for ``session_id``, inserting a fresh one if absent.

        Concurrent callers for the same id always get the same object.
        """
        state = self._sessions.get(session_id)
        if state is not None:
            return state

        with self._map_lock:
            state = self._sessions.get(session_id)
            if state is None:
                now = self._clock()
                state = SessionState(session_id=session_id, created_at=now, updated_at=now)
                self._sessions[session_id] = state
                logger.debug("Created session %s", session_id)
            return state

    def get(self, session_id: str) -> Optional[SessionState]:
        """Return the live state for ``session_id`` without creating it."""
        return self._sessions.get(session_id)

    def exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    def update(self, session_id: str, mutator: Callable[[SessionState], T]) -> T:
        """
        Apply ``mutator`` to the session's state under its lock.

        Updates to the same id are serialized; different ids proceed
        independently. ``updated_at`` is refreshed after the mutator runs.
        If the session is cleared while waiting for its lock, the mutator runs
        against the fresh state that replaces it, never a detached one.
        Concurrent calls for the same id have no defined order.

        Args:
            session_id: Session to mutate (created if absent)
            mutator: Called with the live state; must not await or block long

        Returns:
            Whatever ``mutator`` returns
        """
        while True:
            state = self.get_or_create(session_id)
            with state.lock:
                if self._sessions.get(session_id) is not state:
                    continue
                result = mutator(state)
                state.updated_at = self._clock()
                return result

    def append_message(self, session_id: str, message: ChatMessage) -> None:
        self.update(session_id, lambda state: state.messages.append(message))

    def snapshot(self, session_id: str) -> SessionState:
        """Deep copy of the session's state, taken under its lock."""
        state = self.get_or_create(session_id)
        with state.lock:
            return copy.deepcopy(state)

    def messages(self, session_id: str) -> List[ChatMessage]:
        """Copy of the session's message history (empty for unknown ids)."""
        state = self._sessions.get(session_id)
        if state is None:
            return []
        with state.lock:
            return list(state.messages)

    def clear(self, session_id: str) -> None:
        """
        Drop the session's state.

        The next get_or_create for the same id yields a fresh state.
        """
        if self.delete(session_id):
            StructuredLoggerAdapter(logger, {"session_id": session_id}).info_event(
                "session_cleared", "Session state cleared"
            )

    def delete(self, session_id: str) -> bool:
        """Remove the session. Returns True if it existed."""
        with self._map_lock:
            return self._sessions.pop(session_id, None) is not None

    def list_sessions(self) -> List[str]:
        with self._map_lock:
            return list(self._sessions)

    def sweep_expired(self, max_age_seconds: float) -> List[str]:
        """
        Remove sessions not updated within ``max_age_seconds``.

        Returns:
            Ids of the removed sessions
        """
        cutoff = self._clock() - max_age_seconds
        removed: List[str] = []
        with self._map_lock:
            for session_id, state in list(self._sessions.items()):
                if state.updated_at < cutoff:
                    del self._sessions[session_id]
                    removed.append(session_id)

        if removed:
            logger.info("Swept %d expired session(s)", len(removed))
        return removed

    def __len__(self) -> int:
        return len(self._sessions)
