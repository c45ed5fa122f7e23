"""
Story game service.

UI-agnostic entry point for driving a story from any client (console, chat
bot, web). Each method runs one flow for the given session and returns its
typed result.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from constants import BEGIN_STORY_INPUT
from flows.engine import FlowEngine, FlowName
from flows.models import (
    BeginStoryFlowInput,
    BeginStoryFlowOutput,
    ContinueStoryFlowInput,
    ContinueStoryFlowOutput,
    DescriptionFlowInput,
    DescriptionFlowOutput,
    ImageGenerationInput,
    ImageGenerationOutput,
)


class StoryGameService:
    """
    Drives the story flows for a session.

    All methods raise FlowExecutionError when the underlying flow fails.
    """

    def __init__(self, engine: FlowEngine) -> None:
        self.engine = engine

    async def get_premise(
        self,
        session_id: str,
        user_input: Optional[str],
        clear_session: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DescriptionFlowOutput:
        return await self.engine.execute_direct(
            FlowName.DESCRIPTION,
            DescriptionFlowInput(user_input=user_input, clear_session=clear_session),
            session_id,
            cancel_event,
        )

    async def begin(
        self, session_id: str, cancel_event: Optional[asyncio.Event] = None
    ) -> BeginStoryFlowOutput:
        return await self.engine.execute_direct(
            FlowName.BEGIN,
            BeginStoryFlowInput(user_input=BEGIN_STORY_INPUT),
            session_id,
            cancel_event,
        )

    async def continue_story(
        self, session_id: str, user_input: str, cancel_event: Optional[asyncio.Event] = None
    ) -> ContinueStoryFlowOutput:
        return await self.engine.execute_direct(
            FlowName.CONTINUE,
            ContinueStoryFlowInput(user_input=user_input),
            session_id,
            cancel_event,
        )

    async def generate_image(
        self,
        session_id: str,
        story: Optional[str] = None,
        style: Optional[str] = None,
        theme: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImageGenerationOutput:
        """Illustrate ``story`` (or the session's latest story part when omitted)."""
        return await self.engine.execute_direct(
            FlowName.IMAGE,
            ImageGenerationInput(story=story, style=style, theme=theme),
            session_id,
            cancel_event,
        )
