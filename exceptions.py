"""
Custom exceptions for the Story Generator.

Provides specific exception types for better error handling and debugging.
"""

from __future__ import annotations

from constants import DECODE_PREVIEW_CHARS


class StoryGeneratorError(Exception):
    """Base exception for all Story Generator errors."""

    pass


class LLMError(StoryGeneratorError):
    """Raised when LLM operations fail."""

    pass


class LLMTransportError(LLMError):
    """Raised when the upstream model call still fails after all retry attempts."""

    def __init__(self, message: str, flow_name: str | None = None, attempts: int = 0) -> None:
        self.flow_name = flow_name
        self.attempts = attempts
        context = f"flow '{flow_name}'" if flow_name else "completion"
        super().__init__(f"LLM call for {context} failed after {attempts} attempt(s): {message}")


class LLMDecodeError(LLMError):
    """Raised when model output cannot be coerced into the expected schema."""

    def __init__(self, raw_text: str, schema_name: str = "") -> None:
        self.schema_name = schema_name
        self.preview = raw_text[:DECODE_PREVIEW_CHARS]
        suffix = "..." if len(raw_text) > DECODE_PREVIEW_CHARS else ""
        target = f" as {schema_name}" if schema_name else ""
        super().__init__(f"Unable to parse JSON{target}: {self.preview}{suffix}")


class FlowError(StoryGeneratorError):
    """Base exception for flow dispatch errors."""

    pass


class UnknownFlowError(FlowError):
    """Raised when a requested flow is not registered."""

    def __init__(self, flow_name: str) -> None:
        self.flow_name = flow_name
        super().__init__(f"Flow '{flow_name}' not found")


class FlowInputTypeError(FlowError):
    """Raised when a flow input or output does not match the registered contract."""

    def __init__(self, flow_name: str, expected: type, actual: type, what: str = "input") -> None:
        self.flow_name = flow_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{what.capitalize()} type mismatch for flow '{flow_name}': "
            f"expected {expected.__name__}, got {actual.__name__}"
        )


class FlowExecutionError(FlowError):
    """Raised by direct flow execution when the flow reports a failure."""

    def __init__(self, flow_name: str, error: str, session_id: str | None = None) -> None:
        self.flow_name = flow_name
        self.session_id = session_id
        super().__init__(error or f"Flow '{flow_name}' failed")


class ImageGenerationError(StoryGeneratorError):
    """Raised when the image backend fails to produce an image."""

    pass
