"""
Configuration loader module.

Settings come from ``config/settings.json`` with environment variables
(and a ``.env`` file, if present) taking precedence. The result is cached
after the first load.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from constants import (
    COMFYUI_BASE_URL_DEFAULT,
    COMFYUI_TIMEOUT_MS_DEFAULT,
    IMAGES_DIR_DEFAULT,
    LLM_DEFAULT_MODEL,
    LLM_TIMEOUT_MS_DEFAULT,
    SESSION_MAX_AGE_SECONDS,
)

_CONFIG_DIR = Path(__file__).parent
_SETTINGS_PATH = _CONFIG_DIR / "settings.json"

# Local OpenAI-compatible servers (Ollama, LM Studio) ignore the key
_LOCAL_API_KEY = "not-needed"

# Cache for loaded settings
_settings: Optional["Settings"] = None


class LLMSettings(BaseModel):
    provider: Literal["openai", "anthropic", "gemini"] = "openai"
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_ms: int = LLM_TIMEOUT_MS_DEFAULT


class ComfyUISettings(BaseModel):
    base_url: str = COMFYUI_BASE_URL_DEFAULT
    timeout_ms: int = COMFYUI_TIMEOUT_MS_DEFAULT


class Settings(BaseModel):
    """Application settings."""

    llm: LLMSettings = Field(default_factory=LLMSettings)
    comfyui: ComfyUISettings = Field(default_factory=ComfyUISettings)
    images_dir: str = IMAGES_DIR_DEFAULT
    session_max_age_seconds: int = SESSION_MAX_AGE_SECONDS


# env variable -> (section, field); section None means top level
_ENV_OVERRIDES: Dict[str, tuple[Optional[str], str]] = {
    "LLM_PROVIDER": ("llm", "provider"),
    "LLM_MODEL": ("llm", "model"),
    "OPENAI_API_KEY": ("llm", "api_key"),
    "OPENAI_BASE_URL": ("llm", "base_url"),
    "OPENAI_TIMEOUT_MS": ("llm", "timeout_ms"),
    "COMFYUI_BASE_URL": ("comfyui", "base_url"),
    "COMFYUI_TIMEOUT_MS": ("comfyui", "timeout_ms"),
    "IMAGES_DIR": (None, "images_dir"),
    "SESSION_MAX_AGE_SECONDS": (None, "session_max_age_seconds"),
}


def load_settings(path: Path = _SETTINGS_PATH, environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Build settings from a JSON file and environment overrides.

    Args:
        path: Settings file; a missing file means all defaults
        environ: Environment mapping (defaults to os.environ)

    Raises:
        pydantic.ValidationError: If a value has the wrong type
    """
    data: Dict[str, Any] = {}
    if path.exists():
        with open(path) as f:
            data = json.load(f)

    env = os.environ if environ is None else environ
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is None or value == "":
            continue
        target = data.setdefault(section, {}) if section else data
        target[key] = value

    return Settings.model_validate(data)


def get_settings() -> Settings:
    """
    Load and return application settings.

    Returns cached version after first load.
    """
    global _settings

    if _settings is None:
        load_dotenv()
        _settings = load_settings()

    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None


def build_chat_model(settings: Settings) -> Any:
    """
    Create the chat transport for the configured provider.

    Anthropic and Gemini read their keys from their own environment
    variables; ``llm.api_key`` (OPENAI_API_KEY) only applies to OpenAI.

    Example: provider "openai" with base_url http://localhost:11434/v1 talks to Ollama.
    """
    llm = settings.llm
    model_kwargs: Dict[str, Any] = {"model_name": llm.model} if llm.model else {}

    if llm.provider == "anthropic":
        from llm_story_core.models.anthropic import ClaudeChatModel

        return ClaudeChatModel(**model_kwargs)

    if llm.provider == "gemini":
        from llm_story_core.models.gemini import GeminiChatModel

        return GeminiChatModel(**model_kwargs)

    from llm_story_core.models.openai import OpenAIChatModel

    api_key = llm.api_key
    if not api_key and llm.base_url and not os.getenv("OPENAI_API_KEY"):
        api_key = _LOCAL_API_KEY
    return OpenAIChatModel(
        model_name=llm.model or LLM_DEFAULT_MODEL,
        api_key=api_key,
        base_url=llm.base_url,
        timeout_ms=llm.timeout_ms,
    )
