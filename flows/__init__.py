"""
Flows Package

Named story flows and the dispatcher that runs them.

Components:
- FlowEngine: Registry and dispatcher (FlowRequest -> FlowResponse)
- DescriptionFlow: Builds the story premise with the player
- BeginStoryFlow: Opens the story
- ContinueStoryFlow: Advances the story from the player's choice
- ImageGenerationFlow: Illustrates the current scene
"""

from flows.begin_story import BeginStoryFlow
from flows.continue_story import ContinueStoryFlow
from flows.description import DescriptionFlow
from flows.engine import FlowContext, FlowEngine, FlowName, FlowRequest, FlowResponse
from flows.image_generation import ImageGenerationFlow
from flows.models import (
    BeginStoryFlowInput,
    BeginStoryFlowOutput,
    ContinueStoryFlowInput,
    ContinueStoryFlowOutput,
    ContinueStoryResponse,
    DescriptionFlowInput,
    DescriptionFlowOutput,
    ImageGenerationInput,
    ImageGenerationOutput,
    StoryChoice,
    StoryDetailResponse,
)

__all__ = [
    "BeginStoryFlow",
    "BeginStoryFlowInput",
    "BeginStoryFlowOutput",
    "ContinueStoryFlow",
    "ContinueStoryFlowInput",
    "ContinueStoryFlowOutput",
    "ContinueStoryResponse",
    "DescriptionFlow",
    "DescriptionFlowInput",
    "DescriptionFlowOutput",
    "FlowContext",
    "FlowEngine",
    "FlowName",
    "FlowRequest",
    "FlowResponse",
    "ImageGenerationFlow",
    "ImageGenerationInput",
    "ImageGenerationOutput",
    "StoryChoice",
    "StoryDetailResponse",
]
