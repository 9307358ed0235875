"""
Fixed-size chunking with overlap for document text.
"""

from dataclasses import dataclass, field
from typing import Any

from ..observability.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Chunk:
    """A chunk of document text with its position in the source."""

    content: str
    start_index: int
    end_index: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        """Get chunk size in characters."""
        return len(self.content)


class FixedSizeChunker:
    """
    Split text into windows of ``max_chunk_size`` characters.

    Consecutive windows start ``max_chunk_size - overlap`` characters apart.
    Windows are stripped and whitespace-only windows are skipped.
    """

    def __init__(self, max_chunk_size: int = 1000, overlap: int = 100):
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if not 0 <= overlap < max_chunk_size:
            raise ValueError("overlap must be in [0, max_chunk_size)")
        self.max_chunk_size = max_chunk_size
        self.overlap = overlap

    def chunk(self, content: str, metadata: dict[str, Any] | None = None) -> list[Chunk]:
        chunks = []
        stride = self.max_chunk_size - self.overlap
        start = 0

        while start < len(content):
            end = min(start + self.max_chunk_size, len(content))
            window = content[start:end].strip()
            if window:
                chunks.append(Chunk(window, start, end, dict(metadata or {})))
            start += stride

        logger.debug(f"Chunked {len(content)} characters into {len(chunks)} chunks")
        return chunks


def generate_chunks(text: str, max_length: int = 1000, overlap: int = 100) -> list[str]:
    """Chunk ``text`` and return the chunk contents only."""
    return [chunk.content for chunk in FixedSizeChunker(max_length, overlap).chunk(text)]
