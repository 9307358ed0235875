"""
Retrieval augmentation: prepend document context to a conversation.
"""

from ..config.settings import RAGConfig
from ..observability.logging import get_logger
from ..observability.tracing import trace_span
from ..providers.base import ChatMessage
from .query_rewriter import QueryRewriter
from .retriever import ContentRetriever, RelevantChunk

logger = get_logger(__name__)

CONTEXT_HEADER = "Context extracted from the document:"


def build_context_message(chunks: list[RelevantChunk]) -> ChatMessage:
    """System message listing the chunks as bullet points."""
    body = "\n".join(f"• {chunk.content}" for chunk in chunks)
    return ChatMessage(role="system", content=f"{CONTEXT_HEADER}\n{body}")


class ContextAugmenter:
    """
    Looks up the chunks of a resource most relevant to the latest message.

    When nothing clears the similarity threshold, the first chunks of the
    resource are used instead. Retrieval failures leave the conversation
    unchanged.
    """

    def __init__(
        self,
        retriever: ContentRetriever,
        rewriter: QueryRewriter | None = None,
        config: RAGConfig | None = None,
    ):
        self.retriever = retriever
        self.rewriter = rewriter
        self.config = config or RAGConfig()

    async def relevant_chunks(self, query: str, resource_id: str) -> list[RelevantChunk]:
        if self.rewriter is not None and self.config.rewrite_queries:
            query = await self.rewriter.rewrite(query)

        chunks = await self.retriever.find_relevant_content(query, resource_id)
        if not chunks:
            chunks = await self.retriever.top_chunks(resource_id, self.config.fallback_top_chunks)
            logger.info(f"Falling back to {len(chunks)} top chunks", resource_id=resource_id)
        return chunks

    @trace_span("rag.augment")
    async def augment(self, messages: list[ChatMessage], resource_id: str) -> list[ChatMessage]:
        """Return ``messages`` with a context system message prepended, if any."""
        if not messages:
            return messages
        try:
            chunks = await self.relevant_chunks(messages[-1].text(), resource_id)
        except Exception as e:
            logger.error(f"Error retrieving document context: {e}", resource_id=resource_id)
            return messages

        if not chunks:
            return messages
        return [build_context_message(chunks), *messages]
