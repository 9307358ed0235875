"""
Query reformulation for semantic search over document embeddings.
"""

from ..core.retry import RetryPolicy
from ..observability.logging import get_logger
from ..observability.tracing import trace_span
from ..providers.factory import ModelRoute

logger = get_logger(__name__)

QUERY_REWRITE_SYSTEM_PROMPT = """\
You optimize queries for semantic search over embedded documents.

Rewrite the user's question so that it:
- Matches the language used in formal and administrative documents.
- Is concrete and informative and contains the key terms expected in the text.
- Increases the chance of a semantic match with the stored embeddings.

Rewrite the question as a sentence or phrase likely to appear in the document, or one that \
reflects exactly the kind of information it contains. If the question is very general, \
produce a concrete description representing the whole document.

Reply only with the optimized query.
"""


class QueryRewriter:
    """Rewrites user input with a low-cost model; falls back to the input on failure."""

    def __init__(self, route: ModelRoute, retry_policy: RetryPolicy):
        self.route = route
        self.retry_policy = retry_policy

    @trace_span("rag.rewrite_query")
    async def rewrite(self, query: str) -> str:
        try:
            result = await self.retry_policy.execute(
                lambda: self.route.provider.generate_text(
                    self.route.model, system=QUERY_REWRITE_SYSTEM_PROMPT, prompt=query
                ),
                "rewrite_query",
            )
        except Exception as e:
            logger.error(f"Error rewriting query: {e}")
            return query

        rewritten = result.text.strip()
        logger.debug("Rewrote query", original_chars=len(query), rewritten_chars=len(rewritten))
        return rewritten or query
