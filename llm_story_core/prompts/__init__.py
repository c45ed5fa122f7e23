"""
Prompt templates and builders for story generation.

This module contains the prompt templates and utilities for building the
message lists sent by each story flow.
"""

from llm_story_core.prompts.builder import PromptBuilder
from llm_story_core.prompts.templates import (
    begin_instruction_template,
    continue_instruction_template,
    description_instruction_template,
    image_prompt_template,
    story_preamble,
    structured_output_instruction,
)

__all__ = [
    "PromptBuilder",
    "begin_instruction_template",
    "continue_instruction_template",
    "description_instruction_template",
    "image_prompt_template",
    "story_preamble",
    "structured_output_instruction",
]
