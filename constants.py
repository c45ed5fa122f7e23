"""
Project-wide constants.

Centralizes magic numbers and configuration values for maintainability.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# LLM Configuration
# =============================================================================
LLM_DEFAULT_MODEL: Final[str] = "gemma3"
LLM_TEMPERATURE_TEXT: Final[float] = 0.7
LLM_MAX_TOKENS_TEXT: Final[int] = 2000
LLM_TEMPERATURE_STRUCTURED: Final[float] = 0.2  # Low temperature keeps JSON shape stable
LLM_MAX_TOKENS_STRUCTURED: Final[int] = 2500
LLM_TIMEOUT_MS_DEFAULT: Final[int] = 30000

# =============================================================================
# Retry Policy
# =============================================================================
RETRY_MAX_ATTEMPTS: Final[int] = 3  # 1 initial call + 2 retries
RETRY_BASE_DELAY_SECONDS: Final[float] = 1.0
RETRY_BACKOFF_MULTIPLIER: Final[float] = 2.0

# =============================================================================
# Structured Output
# =============================================================================
DECODE_PREVIEW_CHARS: Final[int] = 200

# =============================================================================
# Story Flows
# =============================================================================
STORY_HISTORY_WINDOW: Final[int] = 5  # Story parts embedded in the continue prompt
PREMISE_MAX_OPTIONS: Final[int] = 5
STORY_COMPLETE_THRESHOLD: Final[float] = 1.0 - 1e-6
DEFAULT_SCENE: Final[str] = "A captivating story scene"
BEGIN_STORY_INPUT: Final[str] = "Begin the story."

# =============================================================================
# Sessions
# =============================================================================
SESSION_MAX_AGE_SECONDS: Final[int] = 6 * 60 * 60
SESSION_SWEEP_INTERVAL_SECONDS: Final[float] = 5 * 60

# =============================================================================
# Image Generation (ComfyUI)
# =============================================================================
COMFYUI_BASE_URL_DEFAULT: Final[str] = "http://localhost:8188"
COMFYUI_TIMEOUT_MS_DEFAULT: Final[int] = 60000
COMFYUI_POLL_INTERVAL_SECONDS: Final[float] = 1.0
COMFYUI_POLL_TIMEOUT_SECONDS: Final[float] = 120.0
COMFYUI_CHECKPOINT: Final[str] = "v1-5-pruned-emaonly.safetensors"
COMFYUI_NEGATIVE_PROMPT: Final[str] = "blurry, low quality, deformed"
COMFYUI_STEPS: Final[int] = 28
COMFYUI_CFG: Final[int] = 7
COMFYUI_WIDTH: Final[int] = 768
COMFYUI_HEIGHT: Final[int] = 512
IMAGE_MIME_TYPE: Final[str] = "image/png"
IMAGES_DIR_DEFAULT: Final[str] = "images"

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL_PRODUCTION: Final[str] = "INFO"
LOG_LEVEL_DEVELOPMENT: Final[str] = "DEBUG"
LOG_FORMAT_JSON: Final[bool] = True  # Set to False for development readable format
