"""
Base class for story flows.

Every flow follows the same shape: read a snapshot of the session, build the
prompt, call the model and decode, then fold the result into the session in
a single update. Nothing is written to the session until the model call and
decode have succeeded, so a failed turn leaves the session as it was.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Generic, TypeVar

from flows.engine import FlowContext
from llm_story_core.completion import ResilientCompletionService
from logging_config import StructuredLoggerAdapter
from sessions.session_store import InMemorySessionStore

TIn = TypeVar("TIn")
TOut = TypeVar("TOut")


class FlowBase(ABC, Generic[TIn, TOut]):
    """
    A named flow with declared input and output types.

    Subclasses set ``name``, ``input_type`` and ``output_type`` and implement
    ``run``. Instances are registered with ``FlowEngine.register_flow``.
    """

    name: ClassVar[str]
    input_type: ClassVar[type]
    output_type: ClassVar[type]

    def __init__(self, completion: ResilientCompletionService, sessions: InMemorySessionStore) -> None:
        self.completion = completion
        self.sessions = sessions

    @abstractmethod
    async def run(self, flow_input: TIn, context: FlowContext) -> TOut:
        """Execute the flow for the session in ``context``."""

    def _logger(self, context: FlowContext) -> StructuredLoggerAdapter:
        return StructuredLoggerAdapter(
            logging.getLogger(type(self).__module__),
            {"session_id": context.session_id, "flow": self.name},
        )
