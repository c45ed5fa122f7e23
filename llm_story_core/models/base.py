"""
Base class for chat transport wrappers.

This module defines the interface that all chat provider wrappers implement.
A transport does exactly one thing: complete a chat given role-tagged
messages and return the reply text. Retries and JSON recovery live above it.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from langchain_core.callbacks.manager import CallbackManagerForLLMRun
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatResult

# LangChain message types -> chat roles understood by provider APIs
_ROLE_BY_MESSAGE_TYPE = {
    "system": "system",
    "human": "user",
    "ai": "assistant",
}


def message_dicts(messages: List[BaseMessage]) -> List[Dict[str, str]]:
    """Flatten LangChain messages into ``{role, content}`` dicts."""
    flattened = []
    for message in messages:
        role = _ROLE_BY_MESSAGE_TYPE.get(message.type, "user")
        content = message.content if isinstance(message.content, str) else str(message.content)
        flattened.append({"role": role, "content": content})
    return flattened


class BaseChatTransport(BaseChatModel, ABC):
    """
    Abstract base class for all chat provider wrappers.

    Extends LangChain's BaseChatModel so transports can be awaited with
    ``ainvoke`` and swapped for LangChain's fake chat models in tests.

    Subclasses must implement:
    - _complete(): Send the flattened messages and return the reply text
    - _llm_type: Property returning the model type identifier

    Per-call overrides accepted through ``ainvoke(..., model=, max_tokens=,
    temperature=)`` are forwarded to _complete().
    """

    model_name: str
    temperature: float = 0.7
    max_tokens: int = 2000
    api_key: Optional[str] = None

    def _get_api_key(
        self, env_var_name: str, provider_name: str, required: bool = True
    ) -> str | None:
        """
        Resolve API key from instance attribute or environment variable.

        Raises:
            EnvironmentError: If required=True and API key not found
        """
        api_key = getattr(self, "api_key", None)
        resolved_key = api_key or os.getenv(env_var_name)

        if required and not resolved_key:
            raise OSError(
                f"{env_var_name} environment variable must be set for {provider_name} models."
            )

        return resolved_key

    def _initialize_client(
        self, client_class: type[Any], api_key: str, package_name: str, **client_kwargs: Any
    ) -> Any:
        """
        Initialize an SDK client with standardized error handling.

        Raises:
            ImportError: If the SDK package is not installed
        """
        try:
            return client_class(api_key=api_key, **client_kwargs)
        except (ImportError, NameError):
            raise ImportError(
                f"{package_name} package not installed. Install it with: pip install {package_name}"
            )

    def _handle_api_error(self, exception: Exception, provider_name: str) -> None:
        """
        Re-raise an SDK error with provider context and the original chained.

        - RuntimeError is re-raised untouched
        - ConnectionError, TimeoutError and ValueError keep their type
        - Everything else becomes RuntimeError
        """
        if isinstance(exception, RuntimeError):
            raise exception

        if isinstance(exception, ConnectionError):
            raise ConnectionError(
                f"{provider_name} API connection failed: {exception}"
            ) from exception
        if isinstance(exception, TimeoutError):
            raise TimeoutError(f"{provider_name} API request timed out: {exception}") from exception
        if isinstance(exception, ValueError):
            raise ValueError(f"Invalid request parameters: {exception}") from exception

        raise RuntimeError(
            f"{provider_name} API call failed: {exception.__class__.__name__}: {exception}"
        ) from exception

    def _generate(
        self,
        messages: List[BaseMessage],
        stop: Optional[List[str]] = None,
        run_manager: Optional[CallbackManagerForLLMRun] = None,
        **kwargs: Any,
    ) -> ChatResult:
        model = kwargs.pop("model", None) or self.model_name
        temperature = kwargs.pop("temperature", self.temperature)
        max_tokens = kwargs.pop("max_tokens", self.max_tokens)

        text = self._complete(
            message_dicts(messages),
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            stop=stop,
            **kwargs,
        )
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=text))])

    @abstractmethod
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
        """
        Send one chat completion request.

        Args:
            messages: Ordered ``{role, content}`` dicts
            model: Provider model name
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            stop: Optional stop sequences

        Returns:
            The reply text

        Raises:
            RuntimeError: If the provider returns no usable text
        """

    @property
    @abstractmethod
    def _llm_type(self) -> str:
        """String identifier for this transport (e.g. "openai", "anthropic-claude")."""

    @property
    def _identifying_params(self) -> Dict[str, Any]:
        return {
            "model_name": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
