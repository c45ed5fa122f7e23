"""
Flow payloads and LLM response schemas.

Flow inputs/outputs are what callers exchange with the dispatcher. Response
schemas describe the JSON the model is asked to return and are decoded
through the structured output extractor, so they accept camelCase,
PascalCase or snake_case keys.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from llm_story_core.structured_output import StructuredModel


def _clamp_progress(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


# =============================================================================
# LLM response schemas
# =============================================================================


class StoryChoice(StructuredModel):
    """A choice offered to the player, with its rating."""

    choice: str = ""
    rating: str = "NEUTRAL"

    @model_validator(mode="before")
    @classmethod
    def accept_bare_text(cls, data: Any) -> Any:
        # Some models return choices as plain strings
        if isinstance(data, str):
            return {"choice": data}
        return data

    @field_validator("rating", mode="before")
    @classmethod
    def normalize_rating(cls, value: Any) -> str:
        return str(value).strip().upper() if value else "NEUTRAL"


class StoryDetailResponse(StructuredModel):
    """Reply to the story-opening prompt."""

    story: Optional[str] = None
    story_parts: List[str] = Field(default_factory=list)
    primary_objective: str = ""
    milestones: List[str] = Field(default_factory=list)
    progress: float = 0.0
    choices: List[StoryChoice] = Field(default_factory=list)

    @field_validator("progress", mode="after")
    @classmethod
    def clamp_progress(cls, value: float) -> float:
        return _clamp_progress(value)

    @model_validator(mode="after")
    def story_as_single_part(self) -> "StoryDetailResponse":
        # Models sometimes answer with one "story" string instead of storyParts
        if not self.story_parts and self.story and self.story.strip():
            self.story_parts = [self.story.strip()]
        return self


class ContinueStoryResponse(StructuredModel):
    """Reply to the continuation prompt."""

    story: Optional[str] = None
    story_parts: List[str] = Field(default_factory=list)
    rating: str = ""
    primary_objective: str = ""
    achieved_current_milestone: bool = False
    progress: float = 0.0
    choices: List[StoryChoice] = Field(default_factory=list)

    @field_validator("progress", mode="after")
    @classmethod
    def clamp_progress(cls, value: float) -> float:
        return _clamp_progress(value)

    @field_validator("rating", mode="before")
    @classmethod
    def normalize_rating(cls, value: Any) -> str:
        return str(value).strip().upper() if value else ""

    @model_validator(mode="after")
    def story_as_single_part(self) -> "ContinueStoryResponse":
        if not self.story_parts and self.story and self.story.strip():
            self.story_parts = [self.story.strip()]
        return self


# =============================================================================
# Flow inputs and outputs
# =============================================================================


class DescriptionFlowInput(BaseModel):
    user_input: Optional[str] = None
    clear_session: bool = False


class DescriptionFlowOutput(StructuredModel):
    """Premise being built with the player. Also the model's reply schema."""

    story_premise: str = ""
    next_question: str = ""
    premise_options: List[str] = Field(default_factory=list)


class BeginStoryFlowInput(BaseModel):
    user_input: str


class BeginStoryFlowOutput(BaseModel):
    story_parts: List[str] = Field(default_factory=list)
    options: List[str] = Field(default_factory=list)
    primary_objective: str = ""
    progress: float = 0.0


class ContinueStoryFlowInput(BaseModel):
    user_input: str


class ContinueStoryFlowOutput(BaseModel):
    story_parts: List[str] = Field(default_factory=list)
    options: List[str] = Field(default_factory=list)
    primary_objective: str = ""
    progress: float = 0.0
    rating: str = ""
    achieved_current_milestone: bool = False


class ImageGenerationInput(BaseModel):
    """
    Scene illustration request.

    Attributes:
        story: Scene text; when blank, the session's latest story part is used
        style: Optional art style (e.g. "watercolor")
        theme: Optional theme appended to the prompt (e.g. "dark fantasy")
    """

    story: Optional[str] = None
    style: Optional[str] = None
    theme: Optional[str] = None


class ImageGenerationOutput(BaseModel):
    file_path: str
    mime_type: str
