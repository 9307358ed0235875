"""
Provider factory: builds providers from settings and resolves call sites to
a (provider, model) pair.
"""

from dataclasses import dataclass

import httpx

from ..config.settings import ModelEndpoint, Settings
from ..observability.logging import get_logger
from .anthropic import AnthropicProvider
from .base import ModelProvider
from .openai import OpenAIProvider

logger = get_logger(__name__)


@dataclass(frozen=True)
class ModelRoute:
    """A concrete model on a concrete provider."""

    provider: ModelProvider
    model: str

    @property
    def label(self) -> str:
        return f"{self.provider.name}:{self.model}"


class ProviderFactory:
    """Factory for creating and caching model providers."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http_client = http_client
        self._provider_classes: dict[str, type[ModelProvider]] = {
            "openai": OpenAIProvider,
            "anthropic": AnthropicProvider,
        }
        self._provider_cache: dict[str, ModelProvider] = {}

    def register_provider_type(self, name: str, provider_class: type[ModelProvider]) -> None:
        """Register a new provider type."""
        self._provider_classes[name] = provider_class
        logger.info(f"Registered provider type: {name}")

    def create_provider(self, name: str, endpoint: ModelEndpoint | None = None) -> ModelProvider:
        """Create a provider instance of the specified type."""
        if name not in self._provider_classes:
            raise ValueError(
                f"Unknown provider: {name}. Available: {list(self._provider_classes.keys())}"
            )

        if endpoint is None:
            endpoint = getattr(self.settings.providers, name, None)
            if endpoint is None:
                raise ValueError(f"No endpoint configuration found for provider: {name}")

        provider = self._provider_classes[name](endpoint=endpoint, http_client=self.http_client)
        logger.info(f"Created {name} provider for {endpoint.base_url}")
        return provider

    def get_provider(self, name: str) -> ModelProvider:
        """Get cached provider or create new one."""
        if name not in self._provider_cache:
            self._provider_cache[name] = self.create_provider(name)
        return self._provider_cache[name]

    # Call-site routes

    def planner_route(self) -> ModelRoute:
        return ModelRoute(self.get_provider("openai"), self.settings.routing.planner_model)

    def text_route(self) -> ModelRoute:
        return ModelRoute(self.get_provider("openai"), self.settings.routing.text_model)

    def document_route(self) -> ModelRoute:
        return ModelRoute(self.get_provider("anthropic"), self.settings.routing.document_model)

    def rewrite_route(self) -> ModelRoute:
        return ModelRoute(self.get_provider("openai"), self.settings.routing.rewrite_model)

    def embedding_route(self) -> ModelRoute:
        return ModelRoute(self.get_provider("openai"), self.settings.routing.embedding_model)

    def get_available_provider_types(self) -> list[str]:
        return list(self._provider_classes.keys())

    async def cleanup(self) -> None:
        """Release providers; the shared HTTP client is owned by the container."""
        for provider in self._provider_cache.values():
            await provider.aclose()
        self._provider_cache.clear()
