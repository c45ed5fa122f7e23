"""
Application wiring.

Builds the session store, completion service, image backend and the four
story flows, and registers the flows with a FlowEngine. Front-ends (console,
chat bots) only need ``create_flow_engine`` or ``create_story_game``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from config import Settings, build_chat_model, get_settings
from constants import SESSION_SWEEP_INTERVAL_SECONDS
from flows.begin_story import BeginStoryFlow
from flows.continue_story import ContinueStoryFlow
from flows.description import DescriptionFlow
from flows.engine import FlowEngine
from flows.image_generation import ImageGenerationFlow, ImageService
from imaging.comfyui import ComfyUIImageService
from llm_story_core.completion import ResilientCompletionService
from sessions.session_store import InMemorySessionStore
from story_game import StoryGameService

logger = logging.getLogger(__name__)


def create_flow_engine(
    settings: Optional[Settings] = None,
    *,
    chat_model: Any = None,
    image_service: Optional[ImageService] = None,
    session_store: Optional[InMemorySessionStore] = None,
) -> FlowEngine:
    """
    Create a FlowEngine with the built-in flows registered.

    Args:
        settings: Application settings (defaults to get_settings())
        chat_model: Chat transport; built from settings when omitted
        image_service: Image backend; a ComfyUI client from settings when omitted
        session_store: Session store; a fresh in-memory store when omitted

    Returns:
        Ready-to-use FlowEngine
    """
    settings = settings or get_settings()
    if chat_model is None:
        chat_model = build_chat_model(settings)
    if image_service is None:
        image_service = ComfyUIImageService(
            base_url=settings.comfyui.base_url,
            timeout_ms=settings.comfyui.timeout_ms,
        )
    sessions = session_store if session_store is not None else InMemorySessionStore()

    completion = ResilientCompletionService(chat_model, default_model=settings.llm.model)

    engine = FlowEngine(sessions)
    engine.register_flow(DescriptionFlow(completion, sessions))
    engine.register_flow(BeginStoryFlow(completion, sessions))
    engine.register_flow(ContinueStoryFlow(completion, sessions))
    engine.register_flow(ImageGenerationFlow(completion, sessions, image_service, settings.images_dir))

    logger.info("Flow engine ready with flows: %s", ", ".join(engine.registered_flows()))
    return engine


def create_story_game(settings: Optional[Settings] = None, **kwargs: Any) -> StoryGameService:
    """Create a StoryGameService over a fully wired FlowEngine."""
    return StoryGameService(create_flow_engine(settings, **kwargs))


async def _sweep_loop(store: InMemorySessionStore, max_age_seconds: float, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        store.sweep_expired(max_age_seconds)


def start_session_sweeper(
    store: InMemorySessionStore,
    max_age_seconds: float,
    interval: float = SESSION_SWEEP_INTERVAL_SECONDS,
) -> asyncio.Task:
    """
    Start a background task that drops sessions idle for ``max_age_seconds``.

    Cancel the returned task to stop sweeping.
    """
    task = asyncio.create_task(_sweep_loop(store, max_age_seconds, interval))
    logger.info("Started session sweeper (max age %ss, every %ss)", max_age_seconds, interval)
    return task
