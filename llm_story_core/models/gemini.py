"""
Google Gemini chat transport.

Adapter for the official Google GenAI SDK.
"""

from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types as genai_types
from pydantic import ConfigDict, Field, PrivateAttr

from llm_story_core.models.base import BaseChatTransport


class GeminiChatModel(BaseChatTransport):
    """Chat transport for Google Gemini models."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    model_name: str = "gemini-2.5-flash"
    thinking_budget: Optional[int] = None
    generation_config: Dict[str, Any] = Field(default_factory=dict)

    _client: genai.Client = PrivateAttr()

    def __init__(self, **data: Any):
        super().__init__(**data)
        resolved_api_key = self._get_api_key("GOOGLE_API_KEY", "Google Gemini")
        self._client = genai.Client(api_key=resolved_api_key)

    def _build_generation_config(
        self,
        system_instruction: str,
        max_tokens: int,
        temperature: float,
        stop: Optional[List[str]],
        overrides: Dict[str, Any],
    ) -> genai_types.GenerateContentConfig:
        config_kwargs: Dict[str, Any] = {
            "temperature": temperature,
            "max_output_tokens": max_tokens,
        }
        if system_instruction:
            config_kwargs["system_instruction"] = system_instruction
        if stop:
            config_kwargs["stop_sequences"] = list(stop)
        if self.thinking_budget is not None:
            config_kwargs["thinking_config"] = genai_types.ThinkingConfig(
                thinking_budget=self.thinking_budget
            )

        config_kwargs.update(self.generation_config)
        config_kwargs.update(overrides)
        return genai_types.GenerateContentConfig(**config_kwargs)

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
        system_instruction = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part.from_text(text=m["content"])],
            )
            for m in messages
            if m["role"] != "system"
        ]
        config = self._build_generation_config(
            system_instruction, max_tokens, temperature, stop, dict(kwargs)
        )

        try:
            response = self._client.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            self._handle_api_error(e, "Google Gemini")

        text_response = response.text
        if text_response is None:
            raise RuntimeError("Google Gemini response did not contain any text.")
        return text_response

    @property
    def _llm_type(self) -> str:
        return "google-genai"

    @property
    def _identifying_params(self) -> Dict[str, Any]:
        return {**super()._identifying_params, "thinking_budget": self.thinking_budget}
