"""
Resilient completion service.

Wraps a chat transport (any LangChain chat model) with the retry policy and
the structured output extractor. This is the only place flows talk to the
model through.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, List, Optional, Sequence, Type, TypeVar

from constants import (
    LLM_MAX_TOKENS_STRUCTURED,
    LLM_MAX_TOKENS_TEXT,
    LLM_TEMPERATURE_STRUCTURED,
    LLM_TEMPERATURE_TEXT,
)
from exceptions import LLMDecodeError, LLMTransportError
from llm_story_core.prompts.templates import structured_output_instruction
from llm_story_core.resilience import RetryPolicy
from llm_story_core.structured_output import decode
from llm_story_core.types import ChatMessage, system_message, to_langchain_messages, user_message
from logging_config import get_context_logger

T = TypeVar("T")


def _reply_text(reply: Any) -> str:
    """Extract plain text from a chat model reply (AIMessage, str, or content blocks)."""
    content = getattr(reply, "content", reply)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    raise RuntimeError(f"Unsupported chat reply type: {type(reply).__name__}")


class ResilientCompletionService:
    """
    Chat completion with bounded retry and structured decoding.

    Args:
        chat_model: Transport exposing ``ainvoke(messages, **kwargs)``
        default_model: Model name used when a call doesn't name one
        retry_policy: Retry/backoff policy (3 attempts, 1s doubling by default)
    """

    def __init__(
        self,
        chat_model: Any,
        default_model: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._chat_model = chat_model
        self.default_model = default_model
        self.retry_policy = retry_policy or RetryPolicy()

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        model: Optional[str] = None,
        max_tokens: int = LLM_MAX_TOKENS_TEXT,
        temperature: float = LLM_TEMPERATURE_TEXT,
        *,
        flow_name: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """
        Complete a chat, retrying on any transport error.

        Args:
            messages: Ordered conversation to send
            model: Model override (defaults to ``default_model`` then the transport's own)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            flow_name: Calling flow, for logs and error context
            cancel_event: Optional cancel signal

        Returns:
            The reply text

        Raises:
            LLMTransportError: Once every attempt has failed
            asyncio.CancelledError: If cancelled before completion
        """
        log = get_context_logger(__name__, flow=flow_name or "completion")
        lc_messages = to_langchain_messages(messages)
        call_kwargs: dict[str, Any] = {"max_tokens": max_tokens, "temperature": temperature}
        resolved_model = model or self.default_model
        if resolved_model:
            call_kwargs["model"] = resolved_model

        attempts = 0

        async def attempt() -> str:
            nonlocal attempts
            attempts += 1
            reply = await self._chat_model.ainvoke(lc_messages, **call_kwargs)
            return _reply_text(reply)

        def on_retry(failed_attempt: int, delay: float, error: Exception) -> None:
            log.warning_event(
                "completion_retry",
                "Completion attempt failed; backing off",
                attempt=failed_attempt,
                delay_seconds=delay,
                error=f"{error.__class__.__name__}: {error}",
            )

        log.debug_event(
            "completion_started",
            "Generating text",
            model=resolved_model,
            message_count=len(lc_messages),
        )
        start_time = time.monotonic()
        try:
            text = await self.retry_policy.run(attempt, cancel_event=cancel_event, on_retry=on_retry)
        except Exception as exc:
            log.error_event(
                "completion_failed",
                "LLM call failed after retries",
                attempts=attempts,
                error=f"{exc.__class__.__name__}: {exc}",
            )
            raise LLMTransportError(str(exc), flow_name=flow_name, attempts=attempts) from exc

        log.debug_event(
            "completion_finished",
            "Generated text",
            characters=len(text),
            attempts=attempts,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        return text

    async def generate_completion(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: int = LLM_MAX_TOKENS_TEXT,
        temperature: float = LLM_TEMPERATURE_TEXT,
        **kwargs: Any,
    ) -> str:
        """Complete a single user prompt."""
        return await self.complete([user_message(prompt)], model, max_tokens, temperature, **kwargs)

    async def generate_structured(
        self,
        messages: Sequence[ChatMessage],
        schema: Type[T],
        model: Optional[str] = None,
        *,
        flow_name: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> T:
        """
        Complete a chat and decode the reply into ``schema``.

        A JSON-only system instruction is prepended and the call runs at a low
        temperature.

        Raises:
            LLMTransportError: If the upstream call keeps failing
            LLMDecodeError: If the reply can't be coerced into ``schema``
        """
        all_messages: List[ChatMessage] = [system_message(structured_output_instruction), *messages]
        text = await self.complete(
            all_messages,
            model,
            LLM_MAX_TOKENS_STRUCTURED,
            LLM_TEMPERATURE_STRUCTURED,
            flow_name=flow_name,
            cancel_event=cancel_event,
        )

        try:
            return decode(text, schema)
        except LLMDecodeError as exc:
            get_context_logger(__name__, flow=flow_name or "completion").error_event(
                "structured_decode_failed",
                "Failed to parse JSON after all attempts",
                schema=exc.schema_name,
                preview=exc.preview,
            )
            raise

    async def generate_with_history(
        self,
        history: Sequence[ChatMessage],
        new_user_message: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = LLM_MAX_TOKENS_TEXT,
        **kwargs: Any,
    ) -> str:
        """Complete a chat made of an optional system prompt, prior history and a new user turn."""
        messages = self._with_history(history, new_user_message, system_prompt)
        return await self.complete(messages, model, max_tokens, **kwargs)

    async def generate_structured_with_history(
        self,
        history: Sequence[ChatMessage],
        new_user_message: str,
        schema: Type[T],
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        **kwargs: Any,
    ) -> T:
        """Structured variant of generate_with_history."""
        messages = self._with_history(history, new_user_message, system_prompt)
        return await self.generate_structured(messages, schema, model, **kwargs)

    @staticmethod
    def _with_history(
        history: Sequence[ChatMessage],
        new_user_message: str,
        system_prompt: Optional[str],
    ) -> List[ChatMessage]:
        messages: List[ChatMessage] = []
        if system_prompt:
            messages.append(system_message(system_prompt))
        messages.extend(history)
        messages.append(user_message(new_user_message))
        return messages
