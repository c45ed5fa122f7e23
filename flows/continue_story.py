"""Story-continuation flow."""

from __future__ import annotations

from constants import STORY_COMPLETE_THRESHOLD, STORY_HISTORY_WINDOW
from flows.base import FlowBase
from flows.engine import FlowContext, FlowName
from flows.models import ContinueStoryFlowInput, ContinueStoryFlowOutput, ContinueStoryResponse
from llm_story_core.completion import ResilientCompletionService
from llm_story_core.prompts.builder import PromptBuilder
from llm_story_core.types import user_message
from sessions.session_store import InMemorySessionStore, SessionState


class ContinueStoryFlow(FlowBase[ContinueStoryFlowInput, ContinueStoryFlowOutput]):
    """
    Advance the story from the player's choice.

    Only the last ``history_window`` story parts are embedded in the prompt.
    """

    name = FlowName.CONTINUE.value
    input_type = ContinueStoryFlowInput
    output_type = ContinueStoryFlowOutput

    def __init__(
        self,
        completion: ResilientCompletionService,
        sessions: InMemorySessionStore,
        history_window: int = STORY_HISTORY_WINDOW,
    ) -> None:
        super().__init__(completion, sessions)
        self.history_window = history_window

    async def run(self, flow_input: ContinueStoryFlowInput, context: FlowContext) -> ContinueStoryFlowOutput:
        session_id = context.session_id
        snapshot = self.sessions.snapshot(session_id)

        messages = PromptBuilder.build_continue_messages(
            snapshot.story_parts,
            flow_input.user_input,
            history_window=self.history_window,
        )
        reply = await self.completion.generate_structured(
            messages,
            ContinueStoryResponse,
            flow_name=self.name,
            cancel_event=context.cancel_event,
        )

        options = [choice.choice for choice in reply.choices]

        def fold(state: SessionState) -> None:
            state.messages.append(user_message(flow_input.user_input))
            state.story_parts.extend(reply.story_parts)
            state.primary_objective = reply.primary_objective
            state.options = list(options)
            state.progress = reply.progress
            state.rating = reply.rating
            state.messages.extend(messages)

        self.sessions.update(session_id, fold)

        log = self._logger(context)
        log.info_event(
            "story_continued",
            "Story advanced",
            rating=reply.rating,
            progress=reply.progress,
            milestone_reached=reply.achieved_current_milestone,
        )
        if reply.progress >= STORY_COMPLETE_THRESHOLD:
            log.info_event("story_completed", "Primary objective reached")

        return ContinueStoryFlowOutput(
            story_parts=list(reply.story_parts),
            options=options,
            primary_objective=reply.primary_objective,
            progress=reply.progress,
            rating=reply.rating,
            achieved_current_milestone=reply.achieved_current_milestone,
        )
