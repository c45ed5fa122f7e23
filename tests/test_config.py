"""
Tests for settings loading and application wiring.
"""

import asyncio
import json
import os
from unittest.mock import Mock, patch

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from pydantic import ValidationError

import config
from config import Settings, build_chat_model, load_settings
from flows.engine import FlowEngine
from sessions.session_store import InMemorySessionStore
from story_app import create_flow_engine, create_story_game, start_session_sweeper
from story_game import StoryGameService


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "llm": {"provider": "openai", "model": "gemma3", "base_url": "http://localhost:11434/v1"},
        "comfyui": {"base_url": "http://comfy:8188", "timeout_ms": 1000},
        "images_dir": "out",
    }))
    return path


class TestLoadSettings:
    def test_reads_json_file(self, settings_file):
        settings = load_settings(settings_file, environ={})

        assert settings.llm.provider == "openai"
        assert settings.llm.model == "gemma3"
        assert settings.llm.base_url == "http://localhost:11434/v1"
        assert settings.comfyui.base_url == "http://comfy:8188"
        assert settings.comfyui.timeout_ms == 1000
        assert settings.images_dir == "out"
        assert settings.session_max_age_seconds == 6 * 60 * 60

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "nope.json", environ={})

        assert settings == Settings()
        assert settings.comfyui.base_url == "http://localhost:8188"

    def test_environment_overrides_file(self, settings_file):
        settings = load_settings(settings_file, environ={
            "LLM_PROVIDER": "anthropic",
            "LLM_MODEL": "claude-3-5-sonnet-latest",
            "COMFYUI_TIMEOUT_MS": "2500",
            "IMAGES_DIR": "/tmp/pictures",
            "OPENAI_BASE_URL": "",
        })

        assert settings.llm.provider == "anthropic"
        assert settings.llm.model == "claude-3-5-sonnet-latest"
        assert settings.llm.base_url == "http://localhost:11434/v1"
        assert settings.comfyui.timeout_ms == 2500
        assert settings.images_dir == "/tmp/pictures"

    def test_invalid_provider_rejected(self, tmp_path):
        with pytest.raises(ValidationError):
            load_settings(tmp_path / "nope.json", environ={"LLM_PROVIDER": "cohere"})

    def test_get_settings_is_cached(self):
        config.reset_settings()
        try:
            with patch("config.load_settings", return_value=Settings()) as mock_load, \
                    patch("config.load_dotenv"):
                first = config.get_settings()
                second = config.get_settings()

            assert first is second
            mock_load.assert_called_once()
        finally:
            config.reset_settings()


class TestBuildChatModel:
    def test_openai_against_local_server_gets_placeholder_key(self):
        settings = Settings.model_validate({"llm": {"base_url": "http://localhost:11434/v1"}})

        with patch.dict(os.environ, {}, clear=True), patch("openai.OpenAI") as mock_openai:
            model = build_chat_model(settings)

        assert model.model_name == "gemma3"
        assert model.base_url == "http://localhost:11434/v1"
        assert mock_openai.call_args.kwargs["api_key"] == "not-needed"

    def test_openai_explicit_key_and_model(self):
        settings = Settings.model_validate({"llm": {"model": "gpt-4o-mini", "api_key": "sk-test"}})

        with patch("openai.OpenAI") as mock_openai:
            model = build_chat_model(settings)

        assert model.model_name == "gpt-4o-mini"
        mock_openai.assert_called_once_with(api_key="sk-test", timeout=30.0)

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "ak"}, clear=False)
    def test_anthropic_provider(self):
        settings = Settings.model_validate({"llm": {"provider": "anthropic", "model": "claude-x"}})

        with patch("anthropic.Anthropic") as mock_anthropic:
            model = build_chat_model(settings)

        assert model._llm_type == "anthropic-claude"
        assert model.model_name == "claude-x"
        mock_anthropic.assert_called_once_with(api_key="ak")

    @patch.dict(os.environ, {"GOOGLE_API_KEY": "gk"}, clear=False)
    def test_gemini_provider_keeps_class_default_model(self):
        settings = Settings.model_validate({"llm": {"provider": "gemini"}})

        with patch("google.genai.Client"):
            model = build_chat_model(settings)

        assert model._llm_type == "google-genai"
        assert model.model_name == "gemini-2.5-flash"


class TestWiring:
    def test_create_flow_engine_registers_story_flows(self):
        store = InMemorySessionStore()
        engine = create_flow_engine(
            Settings(),
            chat_model=FakeListChatModel(responses=["{}"]),
            image_service=Mock(),
            session_store=store,
        )

        assert isinstance(engine, FlowEngine)
        assert engine.registered_flows() == ["Description", "Begin", "Continue", "Image"]
        assert engine.session_store is store

    def test_create_flow_engine_builds_comfyui_client_from_settings(self):
        settings = Settings.model_validate({"comfyui": {"base_url": "http://gpu-box:8188", "timeout_ms": 5000}})

        with patch("story_app.ComfyUIImageService") as mock_comfy:
            create_flow_engine(settings, chat_model=FakeListChatModel(responses=["{}"]))

        mock_comfy.assert_called_once_with(base_url="http://gpu-box:8188", timeout_ms=5000)

    def test_create_story_game(self):
        game = create_story_game(Settings(), chat_model=FakeListChatModel(responses=["{}"]), image_service=Mock())

        assert isinstance(game, StoryGameService)
        assert "Continue" in game.engine.registered_flows()

    async def test_session_sweeper_drops_idle_sessions(self):
        store = Mock()
        store.sweep_expired = Mock(return_value=[])

        task = start_session_sweeper(store, max_age_seconds=60, interval=0.01)
        try:
            for _ in range(100):
                if store.sweep_expired.call_count >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            task.cancel()

        assert store.sweep_expired.call_count >= 2
        store.sweep_expired.assert_called_with(60)
