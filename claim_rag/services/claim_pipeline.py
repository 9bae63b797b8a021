"""Claim evaluation pipeline: load, rewrite, chunk, embed, rank, synthesize."""

import hashlib
import logging
import time
import uuid
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, List, Optional

from claim_rag.core.config import settings
from claim_rag.core.exceptions import CacheError, IndexNotConfigured, PipelineFailed
from claim_rag.models.document import Chunk, RankedContext, TextSegment, Vector
from claim_rag.models.response import PipelineResult
from claim_rag.monitoring.metrics import (
    embedding_cache_hits_total,
    embedding_cache_misses_total,
    pipeline_stage_duration_seconds,
)
from claim_rag.services.cache import CacheService
from claim_rag.services.chunking import ChunkingService
from claim_rag.services.document_loader import DocumentSource
from claim_rag.services.embedding import EmbeddingService
from claim_rag.services.llm import AnswerMode, LLMService
from claim_rag.services.query_rewriter import QueryRewriter
from claim_rag.services.ranking import InMemoryRetriever, Retriever
from claim_rag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    RECEIVED = "received"
    REWRITING = "rewriting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    RANKING = "ranking"
    SYNTHESIZING = "synthesizing"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineRun:
    """Stage log and timings for a single question."""

    def __init__(self, request_id: Optional[str] = None) -> None:
        self.request_id = request_id or uuid.uuid4().hex
        self.stages: List[str] = []
        self.timings: dict = {}

    @contextmanager
    def stage(self, stage: PipelineStage) -> Iterator[None]:
        """
        Record one stage, timing it and converting failures.

        Raises:
            PipelineFailed: Wrapping any exception raised inside the stage.
        """
        self.stages.append(stage.value)
        logger.info(f"[{self.request_id}] Stage {stage.value} started")
        start_time = time.perf_counter()
        try:
            yield
        except Exception as e:
            self.stages.append(PipelineStage.FAILED.value)
            logger.error(f"[{self.request_id}] Stage {stage.value} failed: {str(e)}")
            raise PipelineFailed(stage.value, e) from e
        finally:
            elapsed = time.perf_counter() - start_time
            self.timings[stage.value] = round(elapsed * 1000, 2)
            pipeline_stage_duration_seconds.labels(stage=stage.value).observe(elapsed)

    def complete(self) -> None:
        self.stages.append(PipelineStage.COMPLETED.value)
        logger.info(f"[{self.request_id}] Completed in {sum(self.timings.values()):.2f}ms")


class _PreparedDocument:
    """Per-request document state shared by every question of a request."""

    def __init__(self, source: Optional[DocumentSource]) -> None:
        self.source = source
        self.segments: Optional[List[TextSegment]] = None
        self.chunks: Optional[List[Chunk]] = None
        self.vectors: Optional[List[Vector]] = None


class ClaimPipeline:
    """Runs claim questions against a policy document or the pre-built index."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        llm_service: LLMService,
        query_rewriter: QueryRewriter,
        cache_service: Optional[CacheService] = None,
        vector_db: Optional[VectorDBService] = None,
        chunking_service: Optional[ChunkingService] = None,
        top_k: Optional[int] = None,
    ) -> None:
        """
        Initialize the claim pipeline.

        Args:
            embedding_service: Embedder for chunks and queries.
            llm_service: Answer synthesizer.
            query_rewriter: Rewriter applied before retrieval.
            cache_service: Optional chunk embedding cache.
            vector_db: Optional pre-built index for questions without a document.
            chunking_service: Splitter; built from settings when omitted.
            top_k: Default number of chunks handed to synthesis.
        """
        self.embedding_service = embedding_service
        self.llm_service = llm_service
        self.query_rewriter = query_rewriter
        self.cache_service = cache_service
        self.vector_db = vector_db
        self.chunking_service = chunking_service or ChunkingService()
        self.top_k = settings.top_k if top_k is None else top_k

    def _get_cache_key(self, chunks: List[Chunk]) -> str:
        """
        Build the embedding cache key for a chunked document.

        The fingerprint covers chunk contents, chunking parameters and the
        embedding model and dimensions, so any change to them misses the cache.
        """
        model = self.embedding_service.model
        dimensions = self.embedding_service.dimensions
        digest = hashlib.sha256()
        digest.update(
            f"{model}:{dimensions}:{self.chunking_service.chunk_size}:"
            f"{self.chunking_service.chunk_overlap}".encode()
        )
        for chunk in chunks:
            digest.update(b"\x00")
            digest.update(chunk.content.encode())
        return f"chunk_embeddings:{model}:{dimensions}:{digest.hexdigest()}"

    def _valid_cached_vectors(self, cached, chunk_count: int) -> bool:
        if not isinstance(cached, list) or len(cached) != chunk_count:
            return False
        dimensions = self.embedding_service.dimensions
        return all(
            isinstance(vector, list) and len(vector) == dimensions for vector in cached)

    async def _embed_chunks(self, chunks: List[Chunk], request_id: str) -> List[Vector]:
        cache = self.cache_service if self.cache_service and self.cache_service.enabled else None
        cache_key = self._get_cache_key(chunks) if cache else None

        if cache:
            try:
                cached = await cache.get_json(cache_key)
            except CacheError as e:
                logger.warning(f"[{request_id}] Embedding cache read failed: {e}")
                cached = None
            if self._valid_cached_vectors(cached, len(chunks)):
                embedding_cache_hits_total.inc()
                logger.info(f"[{request_id}] Embedding cache hit for {len(chunks)} chunks")
                return cached
            embedding_cache_misses_total.inc()

        vectors = await self.embedding_service.embed_texts([c.content for c in chunks])

        if cache:
            try:
                await cache.set_json(cache_key, vectors)
            except CacheError as e:
                logger.warning(f"[{request_id}] Embedding cache write failed: {e}")

        return vectors

    def _index_retriever(self) -> Retriever:
        if self.vector_db is None or not self.vector_db.configured:
            raise IndexNotConfigured(
                "No document was supplied and the vector index is not configured")
        return self.vector_db

    async def _run(
        self,
        question: str,
        document: _PreparedDocument,
        mode: AnswerMode,
        top_k: int,
    ) -> PipelineResult:
        run = PipelineRun()

        with run.stage(PipelineStage.RECEIVED):
            if not question or not question.strip():
                raise ValueError("Question must not be empty")
            if document.source is not None and document.segments is None:
                document.segments = await document.source.load()

        with run.stage(PipelineStage.REWRITING):
            rewritten_query = await self.query_rewriter.rewrite(question)

        if document.source is not None:
            with run.stage(PipelineStage.CHUNKING):
                if document.chunks is None:
                    document.chunks = self.chunking_service.chunk(document.segments)
                    logger.info(f"[{run.request_id}] Created {len(document.chunks)} chunks")

        with run.stage(PipelineStage.EMBEDDING):
            if document.source is not None and document.vectors is None:
                document.vectors = await self._embed_chunks(document.chunks, run.request_id)
            query_vector = await self.embedding_service.generate_embedding(rewritten_query)

        with run.stage(PipelineStage.RANKING):
            if document.source is not None:
                retriever: Retriever = InMemoryRetriever(
                    list(zip(document.chunks, document.vectors)))
            else:
                retriever = self._index_retriever()
            context = RankedContext(chunks=await retriever.retrieve(query_vector, top_k))

        with run.stage(PipelineStage.SYNTHESIZING):
            answer = await self.llm_service.synthesize(
                context.to_text(), rewritten_query, mode)

        run.complete()
        return PipelineResult(
            request_id=run.request_id,
            question=question,
            rewritten_query=rewritten_query,
            answer=answer,
            context=context,
            stages=run.stages,
            timings=run.timings,
            chunk_count=len(document.chunks or []),
        )

    async def evaluate(
        self,
        question: str,
        document: Optional[DocumentSource] = None,
        mode: AnswerMode = AnswerMode.CLAIM_DECISION,
        top_k: Optional[int] = None,
    ) -> PipelineResult:
        """
        Answer one question.

        Args:
            question: User question or claim shorthand.
            document: Policy document; when None the pre-built index is used
                and chunking is skipped.
            mode: Claim decision or plain policy answer.
            top_k: Chunks handed to synthesis; defaults to the configured value.

        Returns:
            Typed result with the answer, ranked context and stage log.

        Raises:
            PipelineFailed: If any stage fails.
        """
        return await self._run(
            question,
            _PreparedDocument(document),
            mode,
            self.top_k if top_k is None else top_k,
        )

    async def answer_questions(
        self,
        questions: List[str],
        document: Optional[DocumentSource] = None,
        mode: AnswerMode = AnswerMode.POLICY_QA,
        top_k: Optional[int] = None,
    ) -> List[PipelineResult]:
        """
        Answer several questions about one document.

        The document is loaded, chunked and embedded once; questions then run
        one after another. The first failure aborts the whole batch.

        Args:
            questions: Questions in answer order.
            document: Policy document, or None for the pre-built index.
            mode: Claim decision or plain policy answer.
            top_k: Chunks handed to synthesis per question.

        Returns:
            One result per question, in order.

        Raises:
            PipelineFailed: If any question's pipeline fails.
        """
        if not questions:
            raise PipelineFailed(
                PipelineStage.RECEIVED.value,
                ValueError("At least one question is required"),
            )

        prepared = _PreparedDocument(document)
        top_k = self.top_k if top_k is None else top_k
        results = []
        for question in questions:
            results.append(await self._run(question, prepared, mode, top_k))
        return results
