"""
OpenAI-compatible chat transport.

Works against api.openai.com as well as any OpenAI-compatible endpoint
(Ollama, LM Studio, vLLM) through ``base_url``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, PrivateAttr

from constants import LLM_DEFAULT_MODEL, LLM_TIMEOUT_MS_DEFAULT
from llm_story_core.models.base import BaseChatTransport


class OpenAIChatModel(BaseChatTransport):
    """
    Chat transport for OpenAI and OpenAI-compatible servers.

    Attributes:
        model_name: Default model (overridable per call)
        base_url: Optional endpoint override
        timeout_ms: Network timeout for a single request
        api_key: Optional API key (defaults to OPENAI_API_KEY env variable)
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    model_name: str = LLM_DEFAULT_MODEL
    base_url: Optional[str] = None
    timeout_ms: int = LLM_TIMEOUT_MS_DEFAULT

    _client: Any = PrivateAttr()

    def __init__(self, **data: Any):
        super().__init__(**data)
        resolved_api_key = self._get_api_key("OPENAI_API_KEY", "OpenAI")

        from openai import OpenAI

        client_kwargs: Dict[str, Any] = {"timeout": self.timeout_ms / 1000.0}
        if self.base_url:
            client_kwargs["base_url"] = self.base_url
        self._client = self._initialize_client(OpenAI, resolved_api_key, "openai", **client_kwargs)

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
        try:
            response = self._client.chat.completions.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=messages,
                stop=stop,
                **kwargs,
            )

            if not response.choices:
                raise RuntimeError("OpenAI response did not contain any choices.")

            content = response.choices[0].message.content
            if content is None:
                raise RuntimeError("OpenAI response did not contain any text.")

            return content

        except Exception as e:
            self._handle_api_error(e, "OpenAI")

    @property
    def _llm_type(self) -> str:
        return "openai"

    @property
    def _identifying_params(self) -> Dict[str, Any]:
        return {**super()._identifying_params, "base_url": self.base_url}
