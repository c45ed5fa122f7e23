"""Premise-building flow."""

from __future__ import annotations

from flows.base import FlowBase
from flows.engine import FlowContext, FlowName
from flows.models import DescriptionFlowInput, DescriptionFlowOutput
from llm_story_core.prompts.builder import PromptBuilder
from llm_story_core.types import user_message
from sessions.session_store import SessionState


def _reset_story(state: SessionState) -> None:
    state.messages.clear()
    state.story_parts.clear()
    state.options.clear()
    state.image_paths.clear()
    state.primary_objective = ""
    state.progress = 0.0
    state.rating = ""


class DescriptionFlow(FlowBase[DescriptionFlowInput, DescriptionFlowOutput]):
    """
    Build or refine the story premise with the player.

    With ``clear_session`` the session is reset to a blank story, but only
    once the model reply has decoded; a failed turn keeps the old story. On
    success the player's input (if any) and the prompt messages are appended
    to the session history.
    """

    name = FlowName.DESCRIPTION.value
    input_type = DescriptionFlowInput
    output_type = DescriptionFlowOutput

    async def run(self, flow_input: DescriptionFlowInput, context: FlowContext) -> DescriptionFlowOutput:
        session_id = context.session_id
        messages = PromptBuilder.build_description_messages(flow_input.user_input)
        result = await self.completion.generate_structured(
            messages,
            DescriptionFlowOutput,
            flow_name=self.name,
            cancel_event=context.cancel_event,
        )

        def fold(state: SessionState) -> None:
            if flow_input.clear_session:
                _reset_story(state)
            if flow_input.user_input:
                state.messages.append(user_message(flow_input.user_input))
            state.messages.extend(messages)

        self.sessions.update(session_id, fold)
        self._logger(context).info_event(
            "premise_updated",
            "Premise refined",
            premise_options=len(result.premise_options),
            session_reset=flow_input.clear_session,
        )
        return result
