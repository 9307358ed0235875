"""
Tests for settings, startup determinism, the container and the CLI entry.
"""

import random
from unittest.mock import patch

import httpx
import pytest
from pydantic import ValidationError

from lexiflow.config.container import Container, setup_container
from lexiflow.config.settings import ModelEndpoint, Settings, get_settings
from lexiflow.core.chat import ChatService
from lexiflow.core.determinism import (
    ensure_deterministic_startup,
    freeze_config_and_hash,
    get_config_hash,
    seed_everything,
)
from lexiflow.main import build_parser, main
from lexiflow.rag.context import ContextAugmenter


class TestSettings:
    """Test configuration defaults and environment overrides."""

    def test_defaults(self):
        settings = Settings()

        assert settings.retry.max_attempts == 5
        assert settings.retry.initial_delay_ms == 1000
        assert settings.retry.max_delay_ms == 32000
        assert settings.retry.retryable_status_codes == frozenset({429, 500, 502, 503, 504, 529})
        assert settings.workflow.final_temperature == 0.0
        assert settings.workflow.thinking_budget_tokens == 1024
        assert settings.rag.similarity_threshold == 0.4
        assert settings.rag.max_results == 4

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEX_RETRY__MAX_ATTEMPTS", "3")
        monkeypatch.setenv("LEX_PROVIDERS__OPENAI__API_KEY", "sk-env")
        monkeypatch.setenv("LEX_WORKFLOW__ENABLE_PROGRESS", "false")

        settings = Settings()

        assert settings.retry.max_attempts == 3
        assert settings.providers.openai.api_key == "sk-env"
        assert settings.workflow.enable_progress is False

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            Settings(environment="qa")

    def test_base_url_validation(self):
        endpoint = ModelEndpoint(name="x", base_url="https://api.example.com/v1/")
        assert endpoint.base_url == "https://api.example.com/v1"

        with pytest.raises(ValidationError):
            ModelEndpoint(name="x", base_url="ftp://api.example.com")

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestDeterminism:
    """Test seeding and config hashing."""

    def test_seed_everything(self):
        seed_everything(42)
        first = random.random()
        seed_everything(42)
        assert random.random() == first

    def test_hash_excludes_api_keys(self):
        base = Settings()
        keyed = Settings()
        keyed.providers.openai.api_key = "sk-secret"

        assert freeze_config_and_hash(base) == freeze_config_and_hash(keyed)

    def test_hash_changes_with_config(self):
        base = Settings()
        changed = Settings()
        changed.routing.text_model = "another-model"

        assert freeze_config_and_hash(base) != freeze_config_and_hash(changed)

    def test_startup_records_hash(self):
        seed, config_hash = ensure_deterministic_startup(Settings())

        assert seed == 1337
        assert len(config_hash) == 64
        assert get_config_hash() == config_hash


class TestContainer:
    """Test dependency wiring and cleanup."""

    def test_chat_service_wiring(self):
        container = setup_container(Settings())

        service = container.get("chat_service")

        assert isinstance(service, ChatService)
        assert isinstance(service.augmenter, ContextAugmenter)
        assert container.get("chat_service") is service
        assert container.get("providers") is service.providers

    def test_singleton_overrides_factory(self):
        container = setup_container(Settings())
        container.register_singleton("retry_policy", "custom")

        assert container.get("retry_policy") == "custom"
        assert container.is_instantiated("retry_policy")

    def test_unknown_service(self):
        assert Container(Settings()).get("missing", "fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_cleanup_closes_http_client(self):
        container = setup_container(Settings())
        client = container.get("http_client")
        container.get("providers")

        await container.cleanup()

        assert isinstance(client, httpx.AsyncClient)
        assert client.is_closed
        assert not container.is_instantiated("providers")

    @pytest.mark.asyncio
    async def test_lifespan(self):
        container = setup_container(Settings())

        async with container.lifespan() as active:
            client = active.get("http_client")

        assert client.is_closed


class TestMainEntry:
    """Test the CLI entry point."""

    def test_parser(self):
        args = build_parser().parse_args(["--port", "9000", "--reload"])

        assert args.port == 9000
        assert args.reload is True

    def test_version(self, capsys):
        main(["--version"])

        assert "Lexiflow v1.0.0" in capsys.readouterr().out

    def test_runs_uvicorn(self):
        with patch("lexiflow.main.uvicorn.run") as run:
            main(["--port", "9001", "--workers", "2"])

        run.assert_called_once()
        args, kwargs = run.call_args
        assert args == ("lexiflow.api.server:app",)
        assert kwargs["port"] == 9001
        assert kwargs["workers"] == 2
        assert kwargs["reload"] is False
