"""Scene illustration flow."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Tuple

from constants import DEFAULT_SCENE, IMAGES_DIR_DEFAULT
from flows.base import FlowBase
from flows.engine import FlowContext, FlowName
from flows.models import ImageGenerationInput, ImageGenerationOutput
from llm_story_core.completion import ResilientCompletionService
from llm_story_core.prompts.builder import PromptBuilder
from sessions.session_store import InMemorySessionStore, SessionState


class ImageService(Protocol):
    async def generate_image(
        self, prompt: str, cancel_event: Optional[asyncio.Event] = None
    ) -> Tuple[bytes, str]: ...


def _write_image(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class ImageGenerationFlow(FlowBase[ImageGenerationInput, ImageGenerationOutput]):
    """
    Illustrate the current scene.

    The scene is the input story, else the session's latest story part, else
    a default. The image is written to ``images_dir`` under a UTC timestamp
    file name and its path appended to the session.
    """

    name = FlowName.IMAGE.value
    input_type = ImageGenerationInput
    output_type = ImageGenerationOutput

    def __init__(
        self,
        completion: ResilientCompletionService,
        sessions: InMemorySessionStore,
        image_service: ImageService,
        images_dir: str | Path = IMAGES_DIR_DEFAULT,
    ) -> None:
        super().__init__(completion, sessions)
        self.image_service = image_service
        self.images_dir = Path(images_dir)

    async def run(self, flow_input: ImageGenerationInput, context: FlowContext) -> ImageGenerationOutput:
        session_id = context.session_id
        scene = (flow_input.story or "").strip()
        if not scene:
            snapshot = self.sessions.snapshot(session_id)
            scene = snapshot.story_parts[-1] if snapshot.story_parts else DEFAULT_SCENE

        prompt = PromptBuilder.build_image_prompt(scene, style=flow_input.style, theme=flow_input.theme)
        image, mime_type = await self.image_service.generate_image(prompt, cancel_event=context.cancel_event)

        file_name = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")[:-3] + ".png"
        path = self.images_dir / file_name
        await asyncio.get_running_loop().run_in_executor(None, _write_image, path, image)

        file_path = str(path)

        def fold(state: SessionState) -> None:
            state.image_paths.append(file_path)

        self.sessions.update(session_id, fold)
        self._logger(context).info_event(
            "image_saved",
            "Scene image saved",
            file_path=file_path,
            size_bytes=len(image),
        )
        return ImageGenerationOutput(file_path=file_path, mime_type=mime_type)
