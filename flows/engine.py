"""
Flow Engine Module

Registry and dispatcher for named story flows.

A flow is an async handler ``handler(input, context) -> output`` registered
under a case-insensitive name together with its declared input and output
types. ``execute`` resolves the session, checks types, runs the handler and
normalizes every failure into a failed FlowResponse; it never raises except
for cancellation.

Registration happens at startup; after that the registry is only read, so
dispatch takes no lock.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from exceptions import FlowExecutionError, FlowInputTypeError, UnknownFlowError
from logging_config import StructuredLoggerAdapter
from sessions.session_store import InMemorySessionStore

logger = logging.getLogger(__name__)

TIn = TypeVar("TIn")
TOut = TypeVar("TOut")


class FlowName(str, Enum):
    """Names of the built-in story flows."""

    DESCRIPTION = "Description"
    BEGIN = "Begin"
    CONTINUE = "Continue"
    IMAGE = "Image"


@dataclass
class FlowContext:
    """
    Per-call context handed to every flow handler.

    Attributes:
        session_id: Resolved session id (never empty)
        metadata: Free-form values for the handler (flow name, start time)
        cancel_event: Optional cancel signal for upstream calls
    """

    session_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    cancel_event: Optional[asyncio.Event] = None


@dataclass
class FlowRequest(Generic[TIn]):
    input: TIn
    session_id: Optional[str] = None


@dataclass
class FlowResponse(Generic[TOut]):
    result: Optional[TOut] = None
    session_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.error is None


FlowHandler = Callable[[Any, FlowContext], Awaitable[Any]]


@dataclass(frozen=True)
class _Registration:
    name: str
    handler: FlowHandler
    input_type: type
    output_type: type


def _flow_key(name: Any) -> str:
    if isinstance(name, FlowName):
        name = name.value
    return str(name).strip().lower()


def _mint_session_id() -> str:
    return uuid.uuid4().hex


def _response_session_id(session_id: Optional[str]) -> str:
    # Early failures report an id but never create the session
    return session_id or _mint_session_id()


class FlowEngine:
    """
    Dispatches named flows against the session store.

    Args:
        session_store: Store used to resolve (and lazily create) sessions
    """

    def __init__(self, session_store: InMemorySessionStore) -> None:
        self.session_store = session_store
        self._flows: Dict[str, _Registration] = {}

    def register(
        self,
        name: str | FlowName,
        handler: FlowHandler,
        input_type: type,
        output_type: type,
    ) -> None:
        """
        Register a handler under ``name`` (case-insensitive).

        Registering the same name again replaces the previous handler.

        Raises:
            ValueError: If the name is blank
            TypeError: If the handler isn't callable or a declared type isn't a class
        """
        key = _flow_key(name)
        if not key:
            raise ValueError("Flow name must not be empty")
        if not callable(handler):
            raise TypeError(f"Handler for flow '{name}' is not callable")
        for declared in (input_type, output_type):
            if not isinstance(declared, type):
                raise TypeError(f"Flow '{name}' declares {declared!r}, which is not a type")

        display_name = name.value if isinstance(name, FlowName) else str(name).strip()
        self._flows[key] = _Registration(display_name, handler, input_type, output_type)
        logger.info("Registered flow: %s", display_name)

    def register_flow(self, flow: Any) -> None:
        """Register a FlowBase instance under its own name and types."""
        self.register(flow.name, flow.run, flow.input_type, flow.output_type)

    def registered_flows(self) -> List[str]:
        return [registration.name for registration in self._flows.values()]

    async def execute(
        self,
        flow_name: str | FlowName,
        request: FlowRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> FlowResponse:
        """
        Execute a flow and wrap the outcome in a FlowResponse.

        Args:
            flow_name: Registered flow name (case-insensitive)
            request: Typed input plus optional session id
            cancel_event: Optional cancel signal passed to the handler

        Returns:
            FlowResponse with ``result`` on success or ``error`` on failure.
            ``session_id`` is always set; an unknown flow or mistyped input
            reports the caller's id (or a freshly minted one) without
            creating the session

        Raises:
            asyncio.CancelledError: If the call is cancelled
        """
        registration = self._flows.get(_flow_key(flow_name))
        if registration is None:
            error = UnknownFlowError(str(getattr(flow_name, "value", flow_name)))
            logger.error(str(error))
            return FlowResponse(session_id=_response_session_id(request.session_id), error=str(error))

        if type(request.input) is not registration.input_type:
            error = FlowInputTypeError(
                registration.name, registration.input_type, type(request.input)
            )
            logger.error(str(error))
            return FlowResponse(session_id=_response_session_id(request.session_id), error=str(error))

        session_id = self._resolve_session(request.session_id)
        log = StructuredLoggerAdapter(logger, {"session_id": session_id, "flow": registration.name})
        context = FlowContext(
            session_id=session_id,
            metadata={"flow": registration.name},
            cancel_event=cancel_event,
        )

        log.debug_event("flow_started", f"Executing flow: {registration.name}")
        start_time = time.monotonic()
        try:
            result = registration.handler(request.input, context)
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, registration.output_type):
                raise FlowInputTypeError(
                    registration.name, registration.output_type, type(result), what="output"
                )
        except Exception as exc:
            log.error_event(
                "flow_failed",
                f"Flow '{registration.name}' error",
                error=f"{exc.__class__.__name__}: {exc}",
                exc_info=True,
            )
            return FlowResponse(session_id=session_id, error=str(exc))

        log.debug_event(
            "flow_completed",
            f"Flow '{registration.name}' completed successfully",
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        return FlowResponse(result=result, session_id=session_id)

    async def execute_direct(
        self,
        flow_name: str | FlowName,
        flow_input: Any,
        session_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        """
        Execute a flow and return its result directly.

        Raises:
            FlowExecutionError: If the flow failed for any reason
        """
        response = await self.execute(flow_name, FlowRequest(flow_input, session_id), cancel_event)
        if not response.is_success:
            raise FlowExecutionError(
                str(getattr(flow_name, "value", flow_name)), response.error, response.session_id
            )
        return response.result

    def _resolve_session(self, session_id: Optional[str]) -> str:
        if not session_id:
            session_id = _mint_session_id()
        if not self.session_store.exists(session_id):
            self.session_store.get_or_create(session_id)
        return session_id
