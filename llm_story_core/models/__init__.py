"""
Chat transport wrappers for different LLM providers.

This module provides a unified chat interface for OpenAI-compatible servers,
Claude (Anthropic) and Gemini models.
"""

from llm_story_core.models.anthropic import ClaudeChatModel
from llm_story_core.models.base import BaseChatTransport
from llm_story_core.models.gemini import GeminiChatModel
from llm_story_core.models.openai import OpenAIChatModel

__all__ = [
    "BaseChatTransport",
    "ClaudeChatModel",
    "GeminiChatModel",
    "OpenAIChatModel",
]
