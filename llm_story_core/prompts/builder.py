"""
Prompt builder for composing story flow prompts.

This module provides the PromptBuilder class for constructing the ordered
message lists each flow sends upstream.
"""

from typing import List, Optional, Sequence

from constants import PREMISE_MAX_OPTIONS, STORY_HISTORY_WINDOW
from llm_story_core.prompts.templates import (
    begin_instruction_template,
    continue_instruction_template,
    description_instruction_template,
    image_prompt_template,
    story_preamble,
)
from llm_story_core.types import ChatMessage, system_message, user_message


class PromptBuilder:
    """
    Builder class for the prompts of each story flow.

    Every chat prompt has the same shape: the fixed story preamble as a system
    message followed by one synthesized user turn.
    """

    @staticmethod
    def build_description_messages(user_input: Optional[str]) -> List[ChatMessage]:
        """Build the premise-refinement prompt."""
        instruction = description_instruction_template.format(
            max_options=PREMISE_MAX_OPTIONS,
            user_input=user_input or "",
        )
        return [system_message(story_preamble.strip()), user_message(instruction.strip())]

    @staticmethod
    def build_begin_messages(user_input: str) -> List[ChatMessage]:
        """Build the story-opening prompt."""
        instruction = begin_instruction_template.format(user_input=user_input)
        return [system_message(story_preamble.strip()), user_message(instruction.strip())]

    @staticmethod
    def build_continue_messages(
        story_parts: Sequence[str],
        user_input: str,
        history_window: int = STORY_HISTORY_WINDOW,
    ) -> List[ChatMessage]:
        """
        Build the continuation prompt.

        Args:
            story_parts: All story parts so far, oldest first
            user_input: The player's choice or free-form action
            history_window: How many of the most recent parts to embed

        Returns:
            Ordered messages: preamble, then the continuation request
        """
        recent = list(story_parts)[-history_window:] if history_window > 0 else []
        instruction = continue_instruction_template.format(
            history="\n".join(recent),
            user_input=user_input,
        )
        return [system_message(story_preamble.strip()), user_message(instruction.strip())]

    @staticmethod
    def build_image_prompt(scene: str, style: Optional[str] = None, theme: Optional[str] = None) -> str:
        """
        Build the text-to-image prompt for a scene.

        Examples:
            >>> PromptBuilder.build_image_prompt("a dragon over a lake", style="Watercolor")
            'Highly detailed illustration, cinematic lighting, concept art, in Watercolor style, a dragon over a lake'
        """
        style_clause = f", in {style.strip()} style" if style and style.strip() else ""
        theme_clause = f", {theme.strip()}" if theme and theme.strip() else ""
        return image_prompt_template.format(
            style_clause=style_clause,
            theme_clause=theme_clause,
            scene=scene,
        )
