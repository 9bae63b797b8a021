"""OpenAI embedding generation service."""

import asyncio
import logging
from typing import List, Optional

from openai import AsyncOpenAI

from claim_rag.core.config import settings
from claim_rag.core.exceptions import EmbeddingFailed

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
    ) -> None:
        """
        Initialize the embedding service.

        Args:
            client: OpenAI client; built from settings when omitted.
            batch_size: Texts per embeddings request.
            concurrency: Maximum requests in flight for one call.
        """
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self.batch_size = batch_size or settings.embedding_batch_size
        self.concurrency = concurrency or settings.embedding_concurrency

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts in a single request.

        Args:
            texts: List of non-blank text strings to embed.

        Returns:
            List of embedding vectors, aligned with texts.

        Raises:
            EmbeddingFailed: If embedding generation fails.
        """
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimensions,
            )
        except Exception as e:
            raise EmbeddingFailed(f"Failed to generate embeddings: {str(e)}") from e

        if len(response.data) != len(texts):
            raise EmbeddingFailed(
                f"Expected {len(texts)} embeddings, got {len(response.data)}")

        items = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in items]

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.

        Returns:
            Embedding vector.
        """
        embeddings = await self.embed_texts([text])
        return embeddings[0]

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """
        Embed many texts with concurrent batched requests.

        Blank texts get a zero vector without a remote call. Results are
        matched back to their input positions, independent of the order in
        which requests complete.

        Args:
            texts: Texts to embed, e.g. chunk contents in document order.

        Returns:
            One vector per input text, in input order.

        Raises:
            EmbeddingFailed: If any request fails.
        """
        results: List[Optional[List[float]]] = [None] * len(texts)
        pending = [idx for idx, text in enumerate(texts) if text.strip()]

        for idx, text in enumerate(texts):
            if not text.strip():
                results[idx] = [0.0] * self.dimensions

        batches = [
            pending[i : i + self.batch_size]
            for i in range(0, len(pending), self.batch_size)
        ]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_batch(indices: List[int]) -> List[List[float]]:
            async with semaphore:
                return await self.generate_embeddings([texts[i] for i in indices])

        if batches:
            logger.info(
                f"Embedding {len(pending)} texts in {len(batches)} batches "
                f"(concurrency {self.concurrency})"
            )
            batch_results = await asyncio.gather(
                *(embed_batch(indices) for indices in batches)
            )
            for indices, vectors in zip(batches, batch_results):
                for idx, vector in zip(indices, vectors):
                    results[idx] = vector

        return results  # type: ignore
