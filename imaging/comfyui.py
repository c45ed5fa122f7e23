"""
ComfyUI image backend client.

Submits a minimal text-to-image workflow to a ComfyUI server, polls its
history until an output image appears, then downloads the image bytes.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from typing import Any, Dict, Optional, Tuple

import aiohttp

from constants import (
    COMFYUI_BASE_URL_DEFAULT,
    COMFYUI_CFG,
    COMFYUI_CHECKPOINT,
    COMFYUI_HEIGHT,
    COMFYUI_NEGATIVE_PROMPT,
    COMFYUI_POLL_INTERVAL_SECONDS,
    COMFYUI_POLL_TIMEOUT_SECONDS,
    COMFYUI_STEPS,
    COMFYUI_TIMEOUT_MS_DEFAULT,
    COMFYUI_WIDTH,
    IMAGE_MIME_TYPE,
)
from exceptions import ImageGenerationError
from llm_story_core.resilience import RetryPolicy, sleep_cancellable
from logging_config import get_context_logger

logger = logging.getLogger(__name__)


def build_txt2img_workflow(prompt: str, seed: Optional[int] = None) -> Dict[str, Any]:
    """
    Build the ``/prompt`` request body for a basic SD1.5 text-to-image graph.

    Node links are ``[node_id, output_index]`` pairs.
    """
    if seed is None:
        seed = random.getrandbits(63)

    return {
        "client_id": uuid.uuid4().hex,
        "prompt": {
            "1": {
                "inputs": {"ckpt_name": COMFYUI_CHECKPOINT},
                "class_type": "CheckpointLoaderSimple",
                "_meta": {"title": "Load Checkpoint"},
            },
            "2": {
                "inputs": {"text": prompt, "clip": ["1", 1]},
                "class_type": "CLIPTextEncode",
                "_meta": {"title": "Positive"},
            },
            "3": {
                "inputs": {"text": COMFYUI_NEGATIVE_PROMPT, "clip": ["1", 1]},
                "class_type": "CLIPTextEncode",
                "_meta": {"title": "Negative"},
            },
            "4": {
                "inputs": {
                    "seed": seed,
                    "steps": COMFYUI_STEPS,
                    "cfg": COMFYUI_CFG,
                    "sampler_name": "euler",
                    "scheduler": "normal",
                    "denoise": 1,
                    "model": ["1", 0],
                    "positive": ["2", 0],
                    "negative": ["3", 0],
                    "latent_image": ["5", 0],
                },
                "class_type": "KSampler",
                "_meta": {"title": "KSampler"},
            },
            "5": {
                "inputs": {"width": COMFYUI_WIDTH, "height": COMFYUI_HEIGHT, "batch_size": 1},
                "class_type": "EmptyLatentImage",
                "_meta": {"title": "Empty Latent"},
            },
            "6": {
                "inputs": {"samples": ["4", 0], "vae": ["1", 2]},
                "class_type": "VAEDecode",
                "_meta": {"title": "VAE Decode"},
            },
            "7": {
                "inputs": {"images": ["6", 0]},
                "class_type": "SaveImage",
                "_meta": {"title": "Save Image"},
            },
        },
    }


def find_output_image(history: Any) -> Optional[Tuple[str, str]]:
    """
    Return ``(filename, subfolder)`` of the first output image in a history reply.

    Accepts both ``{prompt_id: {"outputs": ...}}`` and
    ``{"prompts": {prompt_id: {"outputs": ...}}}`` shapes.
    """
    if not isinstance(history, dict):
        return None

    entries = history.get("prompts") if isinstance(history.get("prompts"), dict) else history
    for entry in entries.values():
        if not isinstance(entry, dict):
            continue
        outputs = entry.get("outputs") or {}
        for output in outputs.values():
            for image in (output or {}).get("images") or []:
                filename = image.get("filename")
                if filename:
                    return filename, image.get("subfolder") or ""
    return None


class ComfyUIImageService:
    """
    Text-to-image generation through a ComfyUI server.

    Args:
        base_url: Server root (default http://localhost:8188)
        timeout_ms: Per-request HTTP timeout
        poll_interval: Seconds between history polls
        poll_timeout: Seconds to wait for an output image before giving up
        retry_policy: Retry policy around each whole submit/poll/download attempt
    """

    def __init__(
        self,
        base_url: str = COMFYUI_BASE_URL_DEFAULT,
        timeout_ms: int = COMFYUI_TIMEOUT_MS_DEFAULT,
        poll_interval: float = COMFYUI_POLL_INTERVAL_SECONDS,
        poll_timeout: float = COMFYUI_POLL_TIMEOUT_SECONDS,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.retry_policy = retry_policy or RetryPolicy()

    async def generate_image(
        self, prompt: str, cancel_event: Optional[asyncio.Event] = None
    ) -> Tuple[bytes, str]:
        """
        Generate an image for ``prompt``.

        Returns:
            ``(image_bytes, mime_type)``

        Raises:
            ValueError: If the prompt is blank
            ImageGenerationError: If every attempt failed
            asyncio.CancelledError: If cancelled
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt is required")

        log = get_context_logger(__name__, backend="comfyui")

        def on_retry(attempt: int, delay: float, error: Exception) -> None:
            log.warning_event(
                "image_retry",
                "Image generation attempt failed; backing off",
                attempt=attempt,
                delay_seconds=delay,
                error=f"{error.__class__.__name__}: {error}",
            )

        try:
            return await self.retry_policy.run(
                lambda: self._generate_once(prompt, cancel_event),
                cancel_event=cancel_event,
                on_retry=on_retry,
            )
        except ImageGenerationError:
            raise
        except Exception as exc:
            raise ImageGenerationError(f"ComfyUI image generation failed: {exc}") from exc

    async def _generate_once(
        self, prompt: str, cancel_event: Optional[asyncio.Event]
    ) -> Tuple[bytes, str]:
        headers = {"Accept": "application/json"}
        async with aiohttp.ClientSession(timeout=self.timeout, headers=headers) as session:
            prompt_id = await self._submit(session, prompt)
            filename, subfolder = await self._poll_for_image(session, prompt_id, cancel_event)
            image = await self._download(session, filename, subfolder)
        return image, IMAGE_MIME_TYPE

    async def _submit(self, session: aiohttp.ClientSession, prompt: str) -> str:
        async with session.post(f"{self.base_url}/prompt", json=build_txt2img_workflow(prompt)) as resp:
            body = await resp.text()
            if resp.status >= 400:
                raise ImageGenerationError(f"ComfyUI /prompt error {resp.status}: {body}")
            payload = await resp.json(content_type=None)

        prompt_id = (payload or {}).get("prompt_id")
        if not prompt_id:
            raise ImageGenerationError("Invalid ComfyUI submit response.")
        logger.info("Submitted ComfyUI prompt %s", prompt_id)
        return prompt_id

    async def _poll_for_image(
        self,
        session: aiohttp.ClientSession,
        prompt_id: str,
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[str, str]:
        history_url = f"{self.base_url}/history/{prompt_id}"
        deadline = time.monotonic() + self.poll_timeout
        polls = 0

        while True:
            polls += 1
            async with session.get(history_url) as resp:
                if resp.status < 400:
                    found = find_output_image(await resp.json(content_type=None))
                    if found is not None:
                        logger.debug("ComfyUI prompt %s finished after %d poll(s)", prompt_id, polls)
                        return found

            if time.monotonic() >= deadline:
                raise ImageGenerationError("Timed out waiting for ComfyUI result.")
            await sleep_cancellable(self.poll_interval, cancel_event)

    async def _download(self, session: aiohttp.ClientSession, filename: str, subfolder: str) -> bytes:
        params = {"filename": filename, "subfolder": subfolder, "type": "output"}
        async with session.get(f"{self.base_url}/view", params=params) as resp:
            if resp.status >= 400:
                body = await resp.text()
                raise ImageGenerationError(f"/view error {resp.status}: {body}")
            return await resp.read()
