"""Story-opening flow."""

from __future__ import annotations

from flows.base import FlowBase
from flows.engine import FlowContext, FlowName
from flows.models import BeginStoryFlowInput, BeginStoryFlowOutput, StoryDetailResponse
from llm_story_core.prompts.builder import PromptBuilder
from llm_story_core.types import user_message
from sessions.session_store import SessionState


class BeginStoryFlow(FlowBase[BeginStoryFlowInput, BeginStoryFlowOutput]):
    """Open the story: first segments, primary objective and choices."""

    name = FlowName.BEGIN.value
    input_type = BeginStoryFlowInput
    output_type = BeginStoryFlowOutput

    async def run(self, flow_input: BeginStoryFlowInput, context: FlowContext) -> BeginStoryFlowOutput:
        session_id = context.session_id
        messages = PromptBuilder.build_begin_messages(flow_input.user_input)
        detail = await self.completion.generate_structured(
            messages,
            StoryDetailResponse,
            flow_name=self.name,
            cancel_event=context.cancel_event,
        )

        options = [choice.choice for choice in detail.choices]

        def fold(state: SessionState) -> None:
            state.messages.append(user_message(flow_input.user_input))
            state.story_parts.extend(detail.story_parts)
            state.primary_objective = detail.primary_objective
            state.options = list(options)
            state.progress = detail.progress
            state.messages.extend(messages)

        self.sessions.update(session_id, fold)
        self._logger(context).info_event(
            "story_started",
            "Story opened",
            story_parts=len(detail.story_parts),
            options=len(options),
            progress=detail.progress,
            milestones=detail.milestones,
        )
        return BeginStoryFlowOutput(
            story_parts=list(detail.story_parts),
            options=options,
            primary_objective=detail.primary_objective,
            progress=detail.progress,
        )
