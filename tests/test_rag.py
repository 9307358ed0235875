"""
Tests for chunking, retrieval, query rewriting and context augmentation.
"""

from unittest.mock import AsyncMock

import pytest

from lexiflow.config.settings import RAGConfig
from lexiflow.core.errors import ProviderError
from lexiflow.providers.base import ChatMessage
from lexiflow.providers.factory import ModelRoute
from lexiflow.rag.chunking import FixedSizeChunker, generate_chunks
from lexiflow.rag.context import CONTEXT_HEADER, ContextAugmenter, build_context_message
from lexiflow.rag.query_rewriter import QUERY_REWRITE_SYSTEM_PROMPT, QueryRewriter
from lexiflow.rag.retriever import InMemoryRetriever, ProviderEmbedder, RelevantChunk

# Three 10-character chunks with chunk_size=10 and no overlap
DOCUMENT = "cat-aaaaaadog-bbbbbbcat-cccccc"


class KeywordEmbedder:
    """Embeds text on two axes: mentions of cats and of dogs."""

    def __init__(self):
        self.calls: list[list[str]] = []

    async def __call__(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(texts)
        return [[float("cat" in t), float("dog" in t)] for t in texts]


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def small_config():
    return RAGConfig(chunk_size=10, chunk_overlap=0, max_results=4, fallback_top_chunks=2)


@pytest.fixture
async def retriever(embedder, small_config):
    retriever = InMemoryRetriever(embedder, small_config)
    await retriever.add_document(DOCUMENT, "res-1")
    return retriever


class TestChunking:
    """Test fixed-size chunking with overlap."""

    def test_windows_with_overlap(self):
        chunks = generate_chunks("a" * 2500, max_length=1000, overlap=100)

        assert [len(chunk) for chunk in chunks] == [1000, 1000, 700]

    def test_chunk_positions(self):
        chunks = FixedSizeChunker(max_chunk_size=10, overlap=2).chunk("x" * 20)

        assert [(c.start_index, c.end_index) for c in chunks] == [(0, 10), (8, 18), (16, 20)]

    def test_windows_are_stripped_and_blank_skipped(self):
        text = "hello     " + " " * 10 + "   world  "

        assert generate_chunks(text, max_length=10, overlap=0) == ["hello", "world"]

    def test_empty_text(self):
        assert generate_chunks("") == []

    @pytest.mark.parametrize("size,overlap", [(0, 0), (10, 10), (10, -1)])
    def test_invalid_parameters(self, size, overlap):
        with pytest.raises(ValueError):
            FixedSizeChunker(size, overlap)


class TestInMemoryRetriever:
    """Test similarity search over stored chunks."""

    @pytest.mark.asyncio
    async def test_add_document(self, retriever, embedder):
        assert embedder.calls[0] == ["cat-aaaaaa", "dog-bbbbbb", "cat-cccccc"]
        assert len(await retriever.top_chunks("res-1", 10)) == 3

    @pytest.mark.asyncio
    async def test_add_document_generates_id(self, embedder, small_config):
        retriever = InMemoryRetriever(embedder, small_config)

        resource_id = await retriever.add_document("some text")

        assert await retriever.top_chunks(resource_id, 1) == [RelevantChunk("some text", 1.0)]

    @pytest.mark.asyncio
    async def test_empty_document_rejected(self, embedder):
        retriever = InMemoryRetriever(embedder)

        with pytest.raises(ValueError):
            await retriever.add_document("   ")

    @pytest.mark.asyncio
    async def test_relevant_content_above_threshold(self, retriever):
        results = await retriever.find_relevant_content("a cat question", "res-1")

        assert results == [RelevantChunk("cat-aaaaaa", 1.0), RelevantChunk("cat-cccccc", 1.0)]

    @pytest.mark.asyncio
    async def test_results_sorted_and_limited(self, embedder):
        retriever = InMemoryRetriever(
            embedder, RAGConfig(chunk_size=10, chunk_overlap=0, max_results=2)
        )
        await retriever.add_document("cat-dog-aacat-bbbbbbcat-cccccc", "res-2")

        results = await retriever.find_relevant_content("cat", "res-2")

        assert [r.content for r in results] == ["cat-bbbbbb", "cat-cccccc"]
        assert results[0].similarity >= results[1].similarity

    @pytest.mark.asyncio
    async def test_nothing_relevant(self, retriever):
        assert await retriever.find_relevant_content("birds", "res-1") == []

    @pytest.mark.asyncio
    async def test_empty_query_skips_embedding(self, retriever, embedder):
        assert await retriever.find_relevant_content("  ", "res-1") == []
        assert len(embedder.calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_resource(self, retriever):
        assert await retriever.find_relevant_content("cat", "missing") == []

    @pytest.mark.asyncio
    async def test_query_newlines_flattened(self, retriever, embedder):
        await retriever.find_relevant_content("cat\nfood", "res-1")

        assert embedder.calls[-1] == ["cat food"]

    @pytest.mark.asyncio
    async def test_top_chunks(self, retriever):
        assert await retriever.top_chunks("res-1", 2) == [
            RelevantChunk("cat-aaaaaa", 1.0),
            RelevantChunk("dog-bbbbbb", 1.0),
        ]
        assert await retriever.top_chunks("missing", 2) == []

    @pytest.mark.asyncio
    async def test_remove_resource(self, retriever):
        assert retriever.remove_resource("res-1") == 3
        assert await retriever.top_chunks("res-1", 10) == []
        assert await retriever.find_relevant_content("cat", "res-1") == []
        assert retriever.remove_resource("res-1") == 0

    @pytest.mark.asyncio
    async def test_provider_embedder(self, make_provider, retry_policy):
        provider = make_provider()
        embed = ProviderEmbedder(ModelRoute(provider, "emb-model"), retry_policy)

        vectors = await embed(["ab", "abc"])

        assert vectors == [[2.0, 1.0], [3.0, 1.0]]
        assert provider.calls_of("embed") == [{"model": "emb-model", "texts": ["ab", "abc"]}]


class TestQueryRewriter:
    """Test query rewriting and its fallback."""

    @pytest.mark.asyncio
    async def test_rewrite(self, make_provider, retry_policy):
        provider = make_provider(texts=["  termination clause conditions  "])
        rewriter = QueryRewriter(ModelRoute(provider, "small-model"), retry_policy)

        assert await rewriter.rewrite("how do I end this?") == "termination clause conditions"
        [call] = provider.calls_of("text")
        assert call["system"] == QUERY_REWRITE_SYSTEM_PROMPT
        assert call["prompt"] == "how do I end this?"

    @pytest.mark.asyncio
    async def test_failure_returns_original(self, make_provider, retry_policy):
        provider = make_provider(texts=[ProviderError("invalid", 400)])
        rewriter = QueryRewriter(ModelRoute(provider, "small-model"), retry_policy)

        assert await rewriter.rewrite("original question") == "original question"

    @pytest.mark.asyncio
    async def test_empty_rewrite_returns_original(self, make_provider, retry_policy):
        provider = make_provider(texts=["   "])
        rewriter = QueryRewriter(ModelRoute(provider, "small-model"), retry_policy)

        assert await rewriter.rewrite("original question") == "original question"


class TestContextAugmenter:
    """Test prepending retrieved context to a conversation."""

    def test_context_message(self):
        message = build_context_message([RelevantChunk("one", 0.9), RelevantChunk("two", 0.5)])

        assert message.role == "system"
        assert message.content == f"{CONTEXT_HEADER}\n• one\n• two"

    @pytest.mark.asyncio
    async def test_augment_with_relevant_chunks(self, retriever, small_config):
        augmenter = ContextAugmenter(retriever, config=small_config)
        messages = [ChatMessage(role="user", content="tell me about the cat")]

        augmented = await augmenter.augment(messages, "res-1")

        assert augmented[1:] == messages
        assert augmented[0].content == f"{CONTEXT_HEADER}\n• cat-aaaaaa\n• cat-cccccc"

    @pytest.mark.asyncio
    async def test_falls_back_to_top_chunks(self, retriever, small_config):
        augmenter = ContextAugmenter(retriever, config=small_config)
        messages = [ChatMessage(role="user", content="summarize")]

        augmented = await augmenter.augment(messages, "res-1")

        assert augmented[0].content == f"{CONTEXT_HEADER}\n• cat-aaaaaa\n• dog-bbbbbb"

    @pytest.mark.asyncio
    async def test_rewritten_query_used(self, retriever, small_config):
        rewriter = AsyncMock()
        rewriter.rewrite.return_value = "dog"
        augmenter = ContextAugmenter(retriever, rewriter, small_config)

        chunks = await augmenter.relevant_chunks("what pet?", "res-1")

        assert chunks == [RelevantChunk("dog-bbbbbb", 1.0)]
        rewriter.rewrite.assert_awaited_once_with("what pet?")

    @pytest.mark.asyncio
    async def test_retrieval_failure_keeps_messages(self, small_config):
        failing = AsyncMock()
        failing.find_relevant_content.side_effect = ProviderError("embedding down", 503)
        augmenter = ContextAugmenter(failing, config=small_config)
        messages = [ChatMessage(role="user", content="cat")]

        assert await augmenter.augment(messages, "res-1") == messages

    @pytest.mark.asyncio
    async def test_unknown_resource_keeps_messages(self, retriever, small_config):
        augmenter = ContextAugmenter(retriever, config=small_config)
        messages = [ChatMessage(role="user", content="cat")]

        assert await augmenter.augment(messages, "missing") == messages
