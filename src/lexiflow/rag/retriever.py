"""
Retrieval collaborator: ranked document chunks for a query.

``ContentRetriever`` is the interface the chat service depends on.
``InMemoryRetriever`` implements it with numpy cosine similarity over
embeddings produced by the configured embedding model.
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from ..config.settings import RAGConfig
from ..core.retry import RetryPolicy
from ..observability.logging import get_logger
from ..observability.metrics import timer
from ..observability.probe import probe
from ..providers.factory import ModelRoute
from .chunking import generate_chunks

logger = get_logger(__name__)

Embedder = Callable[[list[str]], Awaitable[list[list[float]]]]


@dataclass(frozen=True)
class RelevantChunk:
    """A chunk of a resource with its similarity to the query."""

    content: str
    similarity: float


class ContentRetriever(Protocol):
    """Query interface over ingested resources."""

    async def find_relevant_content(self, query: str, resource_id: str) -> list[RelevantChunk]:
        """Chunks of ``resource_id`` above the similarity threshold, best first."""
        ...

    async def top_chunks(self, resource_id: str, limit: int) -> list[RelevantChunk]:
        """The first ``limit`` chunks of ``resource_id`` regardless of any query."""
        ...


class ProviderEmbedder:
    """Embeds texts with the embedding route under the retry policy."""

    def __init__(self, route: ModelRoute, retry_policy: RetryPolicy):
        self.route = route
        self.retry_policy = retry_policy

    async def __call__(self, texts: list[str]) -> list[list[float]]:
        return await self.retry_policy.execute(
            lambda: self.route.provider.embed(self.route.model, texts), "embed"
        )


class InMemoryRetriever:
    """Process-local vector store keyed by resource id."""

    def __init__(self, embed: Embedder, config: RAGConfig | None = None):
        self.embed = embed
        self.config = config or RAGConfig()
        self._contents: dict[str, list[str]] = {}
        self._embeddings: dict[str, np.ndarray] = {}

    async def add_document(self, text: str, resource_id: str | None = None) -> str:
        """Chunk and embed ``text``; returns the resource id it is stored under."""
        resource_id = resource_id or str(uuid.uuid4())
        chunks = generate_chunks(text, self.config.chunk_size, self.config.chunk_overlap)
        if not chunks:
            raise ValueError("Resource content is empty")

        with probe("rag.embed_document", resource=resource_id, chunks=len(chunks)):
            vectors = await self.embed(chunks)

        self._contents[resource_id] = chunks
        self._embeddings[resource_id] = np.asarray(vectors, dtype=np.float32)
        logger.info(f"Stored {len(chunks)} chunks", resource_id=resource_id)
        return resource_id

    def remove_resource(self, resource_id: str) -> int:
        """Drop every chunk of ``resource_id``; returns how many were removed."""
        self._embeddings.pop(resource_id, None)
        removed = len(self._contents.pop(resource_id, []))
        logger.info(f"Deleted {removed} embeddings", resource_id=resource_id)
        return removed

    async def find_relevant_content(self, query: str, resource_id: str) -> list[RelevantChunk]:
        if not query or not query.strip():
            logger.warning("Empty query, no relevant content")
            return []
        if resource_id not in self._contents:
            logger.warning("Unknown resource", resource_id=resource_id)
            return []

        with timer("rag_query"):
            [query_vector] = await self.embed([query.replace("\n", " ")])
            similarities = self._cosine_similarities(
                np.asarray(query_vector, dtype=np.float32), self._embeddings[resource_id]
            )

        threshold = self.config.similarity_threshold
        order = np.argsort(-similarities, kind="stable")
        results = [
            RelevantChunk(self._contents[resource_id][i], float(similarities[i]))
            for i in order
            if similarities[i] > threshold
        ][: self.config.max_results]

        if results:
            logger.info(
                "Relevant content found",
                matches=len(results),
                best=f"{results[0].similarity:.3f}",
            )
        else:
            logger.warning("No relevant content found", resource_id=resource_id)
        return results

    async def top_chunks(self, resource_id: str, limit: int) -> list[RelevantChunk]:
        contents = self._contents.get(resource_id, [])[:limit]
        return [RelevantChunk(content, 1.0) for content in contents]

    @staticmethod
    def _cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        return np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
