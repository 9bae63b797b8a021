"""Document chunking service."""

import uuid
from typing import List, Optional, Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

from claim_rag.core.config import settings
from claim_rag.core.exceptions import InvalidConfig
from claim_rag.models.document import Chunk, TextSegment

SEPARATORS = ["\n\n", "\n", " ", ""]


def validate_chunking(chunk_size: int, chunk_overlap: int) -> None:
    """
    Check the size/overlap invariant.

    Args:
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Characters shared with the preceding chunk.

    Raises:
        InvalidConfig: If the parameters cannot produce overlapping chunks.
    """
    if chunk_size <= 0:
        raise InvalidConfig(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise InvalidConfig(
            f"chunk_overlap must not be negative, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise InvalidConfig(
            f"chunk_overlap ({chunk_overlap}) must be smaller than "
            f"chunk_size ({chunk_size})"
        )


class ChunkingService:
    """Service for chunking documents into smaller pieces."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ) -> None:
        """
        Initialize the chunking service.

        Args:
            chunk_size: Maximum characters per chunk.
            chunk_overlap: Characters shared between consecutive chunks.

        Raises:
            InvalidConfig: If chunk_overlap >= chunk_size or either is out of range.
        """
        self.chunk_size = settings.chunk_size if chunk_size is None else chunk_size
        self.chunk_overlap = (
            settings.chunk_overlap if chunk_overlap is None else chunk_overlap
        )
        validate_chunking(self.chunk_size, self.chunk_overlap)

        # Separators are kept and whitespace is not stripped so every
        # character of a segment lands in some chunk.
        self.splitter = RecursiveCharacterTextSplitter(
            separators=SEPARATORS,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            length_function=len,
            keep_separator=True,
            strip_whitespace=False,
            add_start_index=True,
        )

    def _generate_chunk_uuid(self, source: str, chunk_index: int) -> str:
        """
        Generate a deterministic UUID for a chunk based on source and chunk_index.

        Args:
            source: Identifier of the source document.
            chunk_index: Index of the chunk.

        Returns:
            UUID string for the chunk.
        """
        namespace = uuid.UUID("00000000-0000-0000-0000-000000000000")
        name = f"{source}:{chunk_index}"
        return str(uuid.uuid5(namespace, name))

    def chunk(self, segments: Sequence[TextSegment]) -> List[Chunk]:
        """
        Chunk document segments into overlapping pieces.

        Each segment is split on its own; chunks inherit the segment's source,
        page number and metadata and are numbered in document order.

        Args:
            segments: Extracted document segments in document order.

        Returns:
            List of chunks.
        """
        chunks: List[Chunk] = []
        for segment in segments:
            if not segment.content:
                continue

            documents = self.splitter.create_documents([segment.content])
            for document in documents:
                idx = len(chunks)
                chunks.append(
                    Chunk(
                        id=self._generate_chunk_uuid(segment.source, idx),
                        content=document.page_content,
                        index=idx,
                        start_index=document.metadata["start_index"],
                        source=segment.source,
                        page_number=segment.page_number,
                        metadata=dict(segment.metadata),
                    )
                )
        return chunks


def chunk_segments(
    segments: Sequence[TextSegment], chunk_size: int, chunk_overlap: int
) -> List[Chunk]:
    """
    Split segments into chunks with explicit size and overlap.

    Args:
        segments: Extracted document segments.
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Characters shared with the preceding chunk.

    Returns:
        List of chunks in document order.

    Raises:
        InvalidConfig: If the parameters are invalid.
    """
    return ChunkingService(chunk_size, chunk_overlap).chunk(segments)
