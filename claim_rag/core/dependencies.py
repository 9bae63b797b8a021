"""Dependency injection for services."""

import logging

from claim_rag.core.exceptions import CacheError, VectorDBError
from claim_rag.services.cache import CacheService
from claim_rag.services.claim_pipeline import ClaimPipeline
from claim_rag.services.embedding import EmbeddingService
from claim_rag.services.llm import LLMService
from claim_rag.services.query_rewriter import QueryRewriter
from claim_rag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for service instances."""

    def __init__(self) -> None:
        """Initialize service container."""
        self.vector_db = VectorDBService()
        self.embedding_service = EmbeddingService()
        self.cache_service = CacheService()
        self.llm_service = LLMService(client=self.embedding_service.client)
        self.query_rewriter = QueryRewriter(client=self.embedding_service.client)
        self.pipeline = ClaimPipeline(
            embedding_service=self.embedding_service,
            llm_service=self.llm_service,
            query_rewriter=self.query_rewriter,
            cache_service=self.cache_service,
            vector_db=self.vector_db,
        )

    async def initialize(self) -> None:
        """
        Initialize all services.

        Qdrant and Redis are optional; an unreachable one is logged and the
        service starts without it.
        """
        try:
            await self.vector_db.connect()
        except VectorDBError as e:
            logger.error(f"Vector index unavailable: {str(e)}")
        try:
            await self.cache_service.connect()
        except CacheError as e:
            logger.error(f"Embedding cache unavailable: {str(e)}")

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self.vector_db.disconnect()
        await self.cache_service.disconnect()


services = ServiceContainer()


def get_pipeline() -> ClaimPipeline:
    """FastAPI dependency returning the shared claim pipeline."""
    return services.pipeline
