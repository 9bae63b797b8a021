"""Qdrant vector database service."""

import logging
from typing import List, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    NearestQuery,
    PointStruct,
    VectorParams,
)

from claim_rag.core.config import settings
from claim_rag.core.exceptions import DimensionMismatch, IndexNotConfigured, VectorDBError
from claim_rag.models.document import Chunk, ScoredChunk, Vector
from claim_rag.services.ranking import Retriever

logger = logging.getLogger(__name__)


class VectorDBService(Retriever):
    """Service for the pre-built policy chunk index in Qdrant."""

    def __init__(self, client: Optional[AsyncQdrantClient] = None) -> None:
        """
        Initialize the vector database service.

        Args:
            client: Pre-built Qdrant client, mainly for tests.
        """
        self.client: Optional[AsyncQdrantClient] = client
        self.collection_name = settings.qdrant_collection_name
        self.dimensions = settings.embedding_dimensions

    @property
    def configured(self) -> bool:
        return self.client is not None or bool(settings.qdrant_url)

    async def connect(self) -> None:
        """
        Connect to Qdrant.

        Leaves the index disabled when no qdrant_url is configured.

        Raises:
            VectorDBError: If Qdrant is configured but unreachable.
        """
        if not settings.qdrant_url:
            logger.info("Qdrant not configured, pre-indexed queries disabled")
            return
        try:
            self.client = AsyncQdrantClient(
                url=settings.qdrant_url,
                timeout=30.0,
            )
            await self._ensure_collection()
        except Exception as e:
            self.client = None
            raise VectorDBError(
                f"Failed to connect to Qdrant: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Qdrant."""
        if self.client:
            await self.client.close()
            self.client = None

    def _require_client(self) -> AsyncQdrantClient:
        if self.client:
            return self.client
        if not settings.qdrant_url:
            raise IndexNotConfigured("Vector index is not configured")
        raise VectorDBError("Client not connected")

    async def _ensure_collection(self) -> None:
        """Ensure the collection exists."""
        client = self._require_client()

        collections = await client.get_collections()
        collection_names = [col.name for col in collections.collections]

        if self.collection_name not in collection_names:
            logger.info(f"Creating collection {self.collection_name}")
            await client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimensions,
                    distance=Distance.COSINE,
                ),
            )

    def _source_filter(self, source: str) -> Filter:
        return Filter(
            must=[FieldCondition(key="source", match=MatchValue(value=source))]
        )

    async def upsert_chunks(self, chunks: List[Chunk], embeddings: List[Vector]) -> None:
        """
        Upsert policy chunks into the vector database.

        Args:
            chunks: Chunks in document order.
            embeddings: One embedding vector per chunk.

        Raises:
            DimensionMismatch: If an embedding does not match the collection size.
            VectorDBError: If the index is unavailable or the write fails.
        """
        client = self._require_client()

        if len(chunks) != len(embeddings):
            raise VectorDBError(
                "Chunks and embeddings must have the same length")

        points = []
        for chunk, embedding in zip(chunks, embeddings):
            if len(embedding) != self.dimensions:
                raise DimensionMismatch(self.dimensions, len(embedding))
            points.append(
                PointStruct(
                    id=chunk.id,
                    vector=embedding,
                    payload={
                        "source": chunk.source,
                        "content": chunk.content,
                        "chunk_index": chunk.index,
                        "start_index": chunk.start_index,
                        "page_number": chunk.page_number,
                        "metadata": chunk.metadata,
                    },
                )
            )

        try:
            await client.upsert(collection_name=self.collection_name, points=points)
        except Exception as e:
            raise VectorDBError(f"Failed to upsert chunks: {str(e)}") from e

    async def delete_source(self, source: str) -> None:
        """
        Delete all chunks of one source document.

        Args:
            source: Source identifier the chunks were indexed under.
        """
        client = self._require_client()
        try:
            await client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=self._source_filter(source)),
            )
        except Exception as e:
            raise VectorDBError(f"Failed to delete chunks of {source}: {str(e)}") from e

    async def query(self, vector: Vector, top_k: int) -> List[ScoredChunk]:
        """
        Search the index for the chunks closest to a query vector.

        Args:
            vector: Query embedding.
            top_k: Number of results to return.

        Returns:
            Scored chunks, best first.

        Raises:
            IndexNotConfigured: If no Qdrant URL is set.
            DimensionMismatch: If the query vector does not match the collection size.
            VectorDBError: If the search fails.
        """
        client = self._require_client()
        if top_k <= 0:
            return []
        if len(vector) != self.dimensions:
            raise DimensionMismatch(self.dimensions, len(vector))

        try:
            results = await client.query_points(
                collection_name=self.collection_name,
                query=NearestQuery(nearest=vector),
                limit=top_k,
                with_payload=True,
            )
        except Exception as e:
            raise VectorDBError(f"Failed to query index: {str(e)}") from e

        matches = []
        for point in results.points:
            payload = point.payload or {}
            chunk_index = payload.get("chunk_index", 0)
            chunk = Chunk(
                id=str(point.id),
                content=payload.get("content", ""),
                index=chunk_index,
                start_index=payload.get("start_index", 0),
                source=payload.get("source", ""),
                page_number=payload.get("page_number"),
                metadata=payload.get("metadata") or {},
            )
            matches.append(
                ScoredChunk(chunk=chunk, score=point.score, chunk_index=chunk_index)
            )

        return matches

    async def retrieve(self, query_vector: Vector, top_k: int) -> List[ScoredChunk]:
        return await self.query(query_vector, top_k)
