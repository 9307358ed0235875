"""
Dependency injection container for managing application dependencies.

Services are created lazily from registered factories and cached. The shared
``httpx.AsyncClient`` is the only async resource; ``cleanup()`` closes it.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any

import httpx

from ..observability.logging import get_logger
from .settings import Settings, get_settings

logger = get_logger(__name__)


class Container:
    """Dependency injection container with async lifecycle management."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._services: dict[str, Any] = {}
        self._factories: dict[str, Any] = {}
        self._singletons: dict[str, Any] = {}

    def register_factory(self, name: str, factory: Any) -> None:
        """Register a factory function for a service."""
        self._factories[name] = factory

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a singleton instance."""
        self._singletons[name] = instance

    def get(self, name: str, default: Any = None) -> Any:
        """Get a service by name."""
        if name in self._singletons:
            return self._singletons[name]

        if name in self._services:
            return self._services[name]

        if name in self._factories:
            instance = self._factories[name](self)
            self._services[name] = instance
            return instance

        return default

    def is_instantiated(self, name: str) -> bool:
        return name in self._services or name in self._singletons

    async def cleanup(self) -> None:
        """Release providers and close the shared HTTP client."""
        providers = self._services.get("providers")
        if providers is not None:
            try:
                await providers.cleanup()
            except Exception as e:
                logger.error(f"Error cleaning up providers: {e}")

        http_client = self._services.get("http_client") or self._singletons.get("http_client")
        if http_client is not None:
            try:
                await http_client.aclose()
            except Exception as e:
                logger.error(f"Error closing HTTP client: {e}")

        self._services.clear()

    @asynccontextmanager
    async def lifespan(self):
        """Async context manager for container lifecycle."""
        try:
            yield self
        finally:
            await self.cleanup()


def setup_container(settings: Settings | None = None) -> Container:
    """Setup container with default service factories."""
    container = Container(settings)

    def _http_client_factory(c: Container):
        providers = c.settings.providers
        return httpx.AsyncClient(
            timeout=httpx.Timeout(max(providers.openai.timeout, providers.anthropic.timeout)),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
        )

    def _providers_factory(c: Container):
        from ..providers.factory import ProviderFactory

        return ProviderFactory(c.settings, c.get("http_client"))

    def _retry_policy_factory(c: Container):
        from ..core.retry import RetryPolicy

        return RetryPolicy(c.settings.retry)

    def _retriever_factory(c: Container):
        from ..rag.retriever import InMemoryRetriever, ProviderEmbedder

        embedder = ProviderEmbedder(c.get("providers").embedding_route(), c.get("retry_policy"))
        return InMemoryRetriever(embedder, c.settings.rag)

    def _augmenter_factory(c: Container):
        from ..rag.context import ContextAugmenter
        from ..rag.query_rewriter import QueryRewriter

        rewriter = QueryRewriter(c.get("providers").rewrite_route(), c.get("retry_policy"))
        return ContextAugmenter(c.get("retriever"), rewriter, c.settings.rag)

    def _orchestrator_factory(c: Container):
        from ..core.orchestrator import WorkflowOrchestrator
        from ..core.planner import StepPlanner
        from ..core.step_executor import StepExecutor

        retry_policy = c.get("retry_policy")
        planner = StepPlanner(c.get("providers").planner_route(), retry_policy)
        executor = StepExecutor(retry_policy, c.settings.workflow)
        return WorkflowOrchestrator(planner, executor, c.settings.workflow)

    def _chat_service_factory(c: Container):
        from ..core.chat import ChatService

        return ChatService(
            c.get("providers"),
            c.get("orchestrator"),
            c.get("retry_policy"),
            c.get("augmenter"),
            enable_progress=c.settings.workflow.enable_progress,
        )

    container.register_factory("http_client", _http_client_factory)
    container.register_factory("providers", _providers_factory)
    container.register_factory("retry_policy", _retry_policy_factory)
    container.register_factory("retriever", _retriever_factory)
    container.register_factory("augmenter", _augmenter_factory)
    container.register_factory("orchestrator", _orchestrator_factory)
    container.register_factory("chat_service", _chat_service_factory)

    return container


@lru_cache
def get_container() -> Container:
    """Get cached container instance."""
    return setup_container()
