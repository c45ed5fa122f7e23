"""
Anthropic Claude chat transport.

Claude takes system instructions as a separate ``system`` parameter, so
system messages are lifted out of the conversation before the call.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, PrivateAttr

from llm_story_core.models.base import BaseChatTransport


class ClaudeChatModel(BaseChatTransport):
    """
    Chat transport for Anthropic Claude models.

    Attributes:
        model_name: Default Claude model (overridable per call)
        api_key: Optional API key (defaults to ANTHROPIC_API_KEY env variable)
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    model_name: str = "claude-3-5-haiku-20241022"

    _client: Any = PrivateAttr()

    def __init__(self, **data: Any):
        super().__init__(**data)
        resolved_api_key = self._get_api_key("ANTHROPIC_API_KEY", "Claude")

        from anthropic import Anthropic

        self._client = self._initialize_client(Anthropic, resolved_api_key, "anthropic")

    def _complete(
        self,
        messages: List[Dict[str, str]],
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        stop: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> str:
        system_prompt = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        conversation = [m for m in messages if m["role"] != "system"]

        request: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": conversation,
            **kwargs,
        }
        if system_prompt:
            request["system"] = system_prompt
        if stop:
            request["stop_sequences"] = list(stop)

        try:
            response = self._client.messages.create(**request)

            texts = [block.text for block in response.content or [] if getattr(block, "type", "text") == "text"]
            if not texts:
                raise RuntimeError("Claude response did not contain any text.")

            return "".join(texts)

        except Exception as e:
            self._handle_api_error(e, "Claude")

    @property
    def _llm_type(self) -> str:
        return "anthropic-claude"
