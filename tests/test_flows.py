"""
Tests for the story flows.

Flows run through a real FlowEngine and session store. The model is either
LangChain's FakeListChatModel behind the real completion service, or a mocked
completion service when the prompt itself is under test.
"""

import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from exceptions import LLMDecodeError
from flows.begin_story import BeginStoryFlow
from flows.continue_story import ContinueStoryFlow
from flows.description import DescriptionFlow
from flows.engine import FlowEngine, FlowName, FlowRequest
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
    StoryChoice,
)
from llm_story_core.completion import ResilientCompletionService
from llm_story_core.types import Role, user_message
from sessions.session_store import InMemorySessionStore

BEGIN_REPLY = json.dumps({
    "storyParts": ["You stand at the harbor.", "A storm gathers."],
    "primaryObjective": "Find the lost map",
    "milestones": ["Reach the island"],
    "progress": 0.1,
    "choices": [
        {"choice": "Board the ship", "rating": "GOOD"},
        {"choice": "Go home", "rating": "bad"},
    ],
})

CONTINUE_REPLY = json.dumps({
    "storyParts": ["The ship sails."],
    "rating": "good",
    "primaryObjective": "Find the lost map",
    "achievedCurrentMilestone": True,
    "progress": 0.4,
    "choices": [{"choice": "Climb the mast", "rating": "NEUTRAL"}],
})


def build_engine(store, chat_model=None, completion=None, image_service=None, images_dir="images"):
    if completion is None:
        completion = ResilientCompletionService(chat_model)
    engine = FlowEngine(store)
    engine.register_flow(DescriptionFlow(completion, store))
    engine.register_flow(BeginStoryFlow(completion, store))
    engine.register_flow(ContinueStoryFlow(completion, store))
    engine.register_flow(ImageGenerationFlow(completion, store, image_service or Mock(), images_dir))
    return engine


@pytest.fixture
def store():
    return InMemorySessionStore()


class TestDescriptionFlow:
    """Premise building."""

    async def test_returns_premise_and_records_messages(self, store):
        reply = '```json\n{"storyPremise": "Sky pirates", "nextQuestion": "Who leads them?", "premiseOptions": ["A", "B"]}\n```'
        engine = build_engine(store, FakeListChatModel(responses=[reply]))

        result = await engine.execute_direct(
            FlowName.DESCRIPTION, DescriptionFlowInput(user_input="pirates in the sky"), "s1"
        )

        assert isinstance(result, DescriptionFlowOutput)
        assert result.story_premise == "Sky pirates"
        assert result.premise_options == ["A", "B"]

        messages = store.messages("s1")
        assert [m.role for m in messages] == [Role.USER, Role.SYSTEM, Role.USER]
        assert messages[0].content == "pirates in the sky"
        assert "pirates in the sky" in messages[2].content

    async def test_empty_input_adds_only_prompt_messages(self, store):
        engine = build_engine(store, FakeListChatModel(responses=['{"storyPremise": "p"}']))

        await engine.execute_direct(FlowName.DESCRIPTION, DescriptionFlowInput(), "s1")

        assert [m.role for m in store.messages("s1")] == [Role.SYSTEM, Role.USER]

    async def test_clear_session_starts_fresh(self, store):
        store.update("s1", lambda s: s.story_parts.append("old story"))
        engine = build_engine(store, FakeListChatModel(responses=['{"storyPremise": "new"}']))

        await engine.execute_direct(
            FlowName.DESCRIPTION, DescriptionFlowInput(user_input="restart", clear_session=True), "s1"
        )

        state = store.get("s1")
        assert state.story_parts == []
        assert len(state.messages) == 3

    async def test_clear_session_resets_every_story_field(self, store):
        def seed(state):
            state.story_parts.append("old story")
            state.options.append("old option")
            state.image_paths.append("images/old.png")
            state.primary_objective = "old objective"
            state.progress = 0.7
            state.rating = "BAD"

        store.update("s1", seed)
        engine = build_engine(store, FakeListChatModel(responses=['{"storyPremise": "new"}']))

        await engine.execute_direct(
            FlowName.DESCRIPTION, DescriptionFlowInput(user_input="restart", clear_session=True), "s1"
        )

        state = store.get("s1")
        assert state.options == []
        assert state.image_paths == []
        assert state.primary_objective == ""
        assert state.progress == 0.0
        assert state.rating == ""

    async def test_failed_clear_keeps_existing_story(self, store):
        store.update("s1", lambda s: s.story_parts.append("old story"))
        store.append_message("s1", user_message("earlier turn"))
        engine = build_engine(store, FakeListChatModel(responses=["not json at all"]))

        response = await engine.execute(
            FlowName.DESCRIPTION,
            FlowRequest(DescriptionFlowInput(user_input="restart", clear_session=True), "s1"),
        )

        assert not response.is_success
        state = store.get("s1")
        assert state.story_parts == ["old story"]
        assert [m.content for m in state.messages] == ["earlier turn"]


class TestBeginStoryFlow:
    """Story opening."""

    async def test_folds_reply_into_session(self, store):
        store.update("s1", lambda s: s.options.append("stale option"))
        engine = build_engine(store, FakeListChatModel(responses=[BEGIN_REPLY]))

        result = await engine.execute_direct(
            FlowName.BEGIN, BeginStoryFlowInput(user_input="Begin the story."), "s1"
        )

        assert result == BeginStoryFlowOutput(
            story_parts=["You stand at the harbor.", "A storm gathers."],
            options=["Board the ship", "Go home"],
            primary_objective="Find the lost map",
            progress=0.1,
        )

        state = store.get("s1")
        assert state.story_parts == ["You stand at the harbor.", "A storm gathers."]
        assert state.options == ["Board the ship", "Go home"]
        assert state.primary_objective == "Find the lost map"
        assert state.progress == pytest.approx(0.1)
        assert [m.role for m in state.messages] == [Role.USER, Role.SYSTEM, Role.USER]
        assert state.messages[0].content == "Begin the story."

    async def test_failed_turn_leaves_session_untouched(self, store):
        completion = Mock()
        completion.generate_structured = AsyncMock(side_effect=LLMDecodeError("not json", "StoryDetailResponse"))
        engine = build_engine(store, completion=completion)
        store.update("s1", lambda s: s.story_parts.append("existing"))

        response = await engine.execute(
            FlowName.BEGIN, FlowRequest(BeginStoryFlowInput(user_input="go"), "s1")
        )

        assert not response.is_success
        assert "Unable to parse JSON" in response.error
        state = store.get("s1")
        assert state.story_parts == ["existing"]
        assert state.messages == []

    async def test_milestones_are_logged(self, store, caplog):
        engine = build_engine(store, FakeListChatModel(responses=[BEGIN_REPLY]))

        with caplog.at_level(logging.INFO, logger="flows.begin_story"):
            await engine.execute_direct(FlowName.BEGIN, BeginStoryFlowInput(user_input="go"), "s1")

        started = [r for r in caplog.records if getattr(r, "event_type", None) == "story_started"]
        assert len(started) == 1
        assert started[0].milestones == ["Reach the island"]
        assert started[0].session_id == "s1"

    async def test_single_story_string_becomes_story_part(self, store):
        reply = json.dumps({"story": "  The gates open.  ", "primaryObjective": "Enter", "choices": ["Walk in"]})
        engine = build_engine(store, FakeListChatModel(responses=[reply]))

        result = await engine.execute_direct(FlowName.BEGIN, BeginStoryFlowInput(user_input="go"), "s1")

        assert result.story_parts == ["The gates open."]
        assert store.get("s1").story_parts == ["The gates open."]


class TestContinueStoryFlow:
    """Story continuation."""

    async def test_history_window_is_last_five_parts(self, store):
        store.update("s1", lambda s: s.story_parts.extend([f"part {i}" for i in range(7)]))
        completion = Mock()
        completion.generate_structured = AsyncMock(return_value=ContinueStoryResponse(story_parts=["part 7"]))
        engine = build_engine(store, completion=completion)

        await engine.execute_direct(FlowName.CONTINUE, ContinueStoryFlowInput(user_input="run"), "s1")

        messages = completion.generate_structured.await_args.args[0]
        assert messages[0].role is Role.SYSTEM
        prompt = messages[1].content
        for i in range(2, 7):
            assert f"part {i}" in prompt
        assert "part 0" not in prompt
        assert "part 1" not in prompt
        assert 'User choice or input: "run"' in prompt
        assert completion.generate_structured.await_args.args[1] is ContinueStoryResponse
        assert completion.generate_structured.await_args.kwargs["flow_name"] == "Continue"

    async def test_history_window_is_tunable(self, store):
        store.update("s1", lambda s: s.story_parts.extend(["a", "b", "c"]))
        completion = Mock()
        completion.generate_structured = AsyncMock(return_value=ContinueStoryResponse())
        flow = ContinueStoryFlow(completion, store, history_window=1)
        engine = FlowEngine(store)
        engine.register_flow(flow)

        await engine.execute_direct(FlowName.CONTINUE, ContinueStoryFlowInput(user_input="x"), "s1")

        prompt = completion.generate_structured.await_args.args[0][1].content
        assert "recent context:\n\nc\n\nUser choice" in prompt

    async def test_folds_reply_and_replaces_options(self, store):
        store.update("s1", lambda s: (s.story_parts.append("start"), s.options.append("old")))
        engine = build_engine(store, FakeListChatModel(responses=[CONTINUE_REPLY]))

        result = await engine.execute_direct(
            FlowName.CONTINUE, ContinueStoryFlowInput(user_input="Board the ship"), "s1"
        )

        assert isinstance(result, ContinueStoryFlowOutput)
        assert result.rating == "GOOD"
        assert result.achieved_current_milestone is True
        assert result.options == ["Climb the mast"]

        state = store.get("s1")
        assert state.story_parts == ["start", "The ship sails."]
        assert state.options == ["Climb the mast"]
        assert state.rating == "GOOD"
        assert state.progress == pytest.approx(0.4)
        assert state.messages[0].content == "Board the ship"


class TestImageGenerationFlow:
    """Scene illustration."""

    def make_image_service(self):
        service = Mock()
        service.generate_image = AsyncMock(return_value=(b"\x89PNG fake", "image/png"))
        return service

    async def test_uses_latest_story_part_and_saves_file(self, store, tmp_path):
        store.update("s1", lambda s: s.story_parts.extend(["Dawn.", "The castle burns."]))
        image_service = self.make_image_service()
        engine = build_engine(store, completion=Mock(), image_service=image_service, images_dir=tmp_path)

        result = await engine.execute_direct(FlowName.IMAGE, ImageGenerationInput(), "s1")

        image_service.generate_image.assert_awaited_once_with(
            "Highly detailed illustration, cinematic lighting, concept art, The castle burns.",
            cancel_event=None,
        )
        path = Path(result.file_path)
        assert path.parent == tmp_path
        assert path.suffix == ".png"
        assert path.read_bytes() == b"\x89PNG fake"
        assert result.mime_type == "image/png"
        assert store.get("s1").image_paths == [result.file_path]

    async def test_explicit_story_with_style_and_theme(self, store, tmp_path):
        image_service = self.make_image_service()
        engine = build_engine(store, completion=Mock(), image_service=image_service, images_dir=tmp_path)

        await engine.execute_direct(
            FlowName.IMAGE,
            ImageGenerationInput(story="A ship at sea", style="watercolor", theme="dark fantasy"),
            "s1",
        )

        prompt = image_service.generate_image.await_args.args[0]
        assert prompt == (
            "Highly detailed illustration, cinematic lighting, concept art, "
            "in watercolor style, dark fantasy, A ship at sea"
        )

    async def test_default_scene_for_empty_session(self, store, tmp_path):
        image_service = self.make_image_service()
        engine = build_engine(store, completion=Mock(), image_service=image_service, images_dir=tmp_path)

        await engine.execute_direct(FlowName.IMAGE, ImageGenerationInput(story="   "), "s1")

        prompt = image_service.generate_image.await_args.args[0]
        assert prompt.endswith(", A captivating story scene")

    async def test_backend_failure_records_nothing(self, store, tmp_path):
        image_service = Mock()
        image_service.generate_image = AsyncMock(side_effect=RuntimeError("ComfyUI down"))
        engine = build_engine(store, completion=Mock(), image_service=image_service, images_dir=tmp_path)

        response = await engine.execute(FlowName.IMAGE, FlowRequest(ImageGenerationInput(story="x"), "s1"))

        assert not response.is_success
        assert response.error == "ComfyUI down"
        assert store.get("s1").image_paths == []
        assert list(tmp_path.iterdir()) == []


class TestStoryChoiceModel:
    def test_choice_defaults(self):
        assert StoryChoice(choice="Wait").rating == "NEUTRAL"


class TestStoryResponseModels:
    def test_story_string_fills_empty_parts(self):
        reply = ContinueStoryResponse.model_validate({"Story": "The ship sinks."})
        assert reply.story_parts == ["The ship sinks."]

    def test_story_parts_win_over_story_string(self):
        reply = ContinueStoryResponse.model_validate({"story": "ignored", "storyParts": ["a", "b"]})
        assert reply.story_parts == ["a", "b"]

    def test_blank_story_string_ignored(self):
        assert ContinueStoryResponse.model_validate({"story": "   "}).story_parts == []
