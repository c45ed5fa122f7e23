"""
LLM Story Core - resilient structured-output orchestration for story generation.

This package provides chat transports for several LLM providers, a retrying
completion service, and a tolerant extractor that turns free-form model
replies into typed results.
"""

from llm_story_core.completion import ResilientCompletionService
from llm_story_core.models.base import BaseChatTransport
from llm_story_core.prompts.builder import PromptBuilder
from llm_story_core.resilience import RetryPolicy
from llm_story_core.structured_output import StructuredModel, decode, encode
from llm_story_core.types import ChatMessage, Role

__all__ = [
    "BaseChatTransport",
    "ChatMessage",
    "PromptBuilder",
    "ResilientCompletionService",
    "RetryPolicy",
    "Role",
    "StructuredModel",
    "decode",
    "encode",
]

__version__ = "0.1.0"
