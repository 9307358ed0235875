"""
Retrieval over ingested documents: chunking, embedding search and context
augmentation.
"""

from .chunking import Chunk, FixedSizeChunker, generate_chunks
from .context import ContextAugmenter, build_context_message
from .query_rewriter import QueryRewriter
from .retriever import ContentRetriever, InMemoryRetriever, ProviderEmbedder, RelevantChunk

__all__ = [
    "Chunk",
    "ContentRetriever",
    "ContextAugmenter",
    "FixedSizeChunker",
    "InMemoryRetriever",
    "ProviderEmbedder",
    "QueryRewriter",
    "RelevantChunk",
    "build_context_message",
    "generate_chunks",
]
