"""Document, chunk and ranking models for the claim RAG system."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

Vector = List[float]

CONTEXT_SEPARATOR = "\n\n---\n\n"


class TextSegment(BaseModel):
    """One page or section of raw text extracted from a policy document."""

    model_config = ConfigDict(frozen=True)

    content: str
    source: str
    page_number: Optional[int] = None
    metadata: dict = Field(default_factory=dict)


class Chunk(BaseModel):
    """Chunk model representing a contiguous fragment of a segment."""

    id: str
    content: str
    index: int
    start_index: int
    source: str
    page_number: Optional[int] = None
    metadata: dict = Field(default_factory=dict)


class ScoredChunk(BaseModel):
    """A chunk paired with its similarity to the query."""

    chunk: Chunk
    score: float
    chunk_index: int


class RankedContext(BaseModel):
    """Top-K chunks for one request, in ranked order."""

    chunks: List[ScoredChunk] = Field(default_factory=list)

    def to_text(self) -> str:
        """
        Render the ranked chunks as a single context blob for synthesis.

        Returns:
            Chunks labelled by their 1-based document position, separated by
            horizontal rules.
        """
        return CONTEXT_SEPARATOR.join(
            f"[Chunk {scored.chunk_index + 1}]: {scored.chunk.content}"
            for scored in self.chunks
        )
