import pytest

from claim_rag.core.exceptions import (
    DocumentLoadFailed,
    EmbeddingFailed,
    IndexNotConfigured,
    LLMError,
    PipelineFailed,
)
from claim_rag.services.claim_pipeline import ClaimPipeline
from claim_rag.services.document_loader import InMemoryDocumentSource
from claim_rag.services.llm import AnswerMode
from conftest import (
    POLICY_TEXT,
    CountingSource,
    MockCacheService,
    MockEmbeddingService,
    MockIndex,
    MockLLMService,
    MockQueryRewriter,
    make_scored,
)

FULL_STAGES = [
    "received",
    "rewriting",
    "chunking",
    "embedding",
    "ranking",
    "synthesizing",
    "completed",
]


class FailingSource(CountingSource):
    async def load(self):
        raise DocumentLoadFailed("download refused")


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_stages_and_result(self, pipeline, mock_llm) -> None:
        result = await pipeline.evaluate(
            "Is knee surgery covered?", InMemoryDocumentSource(POLICY_TEXT))

        assert result.stages == FULL_STAGES
        assert result.answer == "Mock answer"
        assert result.rewritten_query == "Is knee surgery covered?"
        assert result.chunk_count > 1
        assert len(result.context.chunks) == 2
        assert "Knee surgery" in result.context.chunks[0].chunk.content
        assert set(result.timings) == set(FULL_STAGES) - {"completed"}
        assert mock_llm.calls[0]["mode"] == AnswerMode.CLAIM_DECISION
        assert mock_llm.calls[0]["context"] == result.context.to_text()

    @pytest.mark.asyncio
    async def test_rewritten_query_drives_retrieval(
        self, mock_embedder, mock_llm, small_chunker
    ) -> None:
        pipeline = ClaimPipeline(
            embedding_service=mock_embedder,
            llm_service=mock_llm,
            query_rewriter=MockQueryRewriter(suffix=" dental"),
            chunking_service=small_chunker,
            top_k=1,
        )

        result = await pipeline.evaluate("46M claim", InMemoryDocumentSource(POLICY_TEXT))

        assert result.question == "46M claim"
        assert result.rewritten_query == "46M claim dental"
        assert mock_embedder.query_calls == ["46M claim dental"]
        assert mock_llm.calls[0]["query"] == "46M claim dental"
        assert "Dental" in result.context.chunks[0].chunk.content

    @pytest.mark.asyncio
    async def test_same_input_gives_same_ranking(self, pipeline) -> None:
        first = await pipeline.evaluate("maternity waiting", InMemoryDocumentSource(POLICY_TEXT))
        second = await pipeline.evaluate("maternity waiting", InMemoryDocumentSource(POLICY_TEXT))

        assert [(s.chunk.id, s.score) for s in first.context.chunks] == [
            (s.chunk.id, s.score) for s in second.context.chunks
        ]
        assert first.request_id != second.request_id

    @pytest.mark.asyncio
    async def test_top_k_override(self, pipeline) -> None:
        result = await pipeline.evaluate(
            "surgery", InMemoryDocumentSource(POLICY_TEXT), top_k=1)
        assert len(result.context.chunks) == 1

    @pytest.mark.asyncio
    async def test_zero_top_k_gives_empty_context(self, pipeline, mock_llm) -> None:
        result = await pipeline.evaluate(
            "surgery", InMemoryDocumentSource(POLICY_TEXT), top_k=0)

        assert result.context.chunks == []
        assert mock_llm.calls[0]["context"] == ""

    @pytest.mark.asyncio
    async def test_prebuilt_index_skips_chunking(
        self, mock_embedder, mock_llm, mock_rewriter
    ) -> None:
        index = MockIndex([make_scored(4, 0.9), make_scored(1, 0.4)])
        pipeline = ClaimPipeline(
            embedding_service=mock_embedder,
            llm_service=mock_llm,
            query_rewriter=mock_rewriter,
            vector_db=index,
            top_k=5,
        )

        result = await pipeline.evaluate("cataract surgery limit")

        assert result.stages == [s for s in FULL_STAGES if s != "chunking"]
        assert result.chunk_count == 0
        assert [s.chunk_index for s in result.context.chunks] == [4, 1]
        assert len(index.queries) == 1
        assert mock_embedder.embed_calls == []

    @pytest.mark.asyncio
    async def test_missing_index_fails_at_ranking(self, pipeline) -> None:
        with pytest.raises(PipelineFailed) as exc_info:
            await pipeline.evaluate("cataract surgery limit")

        assert exc_info.value.stage == "ranking"
        assert isinstance(exc_info.value.cause, IndexNotConfigured)


class TestFailures:
    @pytest.mark.asyncio
    async def test_blank_question(self, pipeline) -> None:
        with pytest.raises(PipelineFailed) as exc_info:
            await pipeline.evaluate("  ", InMemoryDocumentSource(POLICY_TEXT))

        assert exc_info.value.stage == "received"
        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.asyncio
    async def test_document_load_failure(self, pipeline) -> None:
        with pytest.raises(PipelineFailed) as exc_info:
            await pipeline.evaluate("knee", FailingSource())

        assert exc_info.value.stage == "received"
        assert isinstance(exc_info.value.cause, DocumentLoadFailed)

    @pytest.mark.asyncio
    async def test_embedding_failure(self, mock_llm, mock_rewriter, small_chunker) -> None:
        pipeline = ClaimPipeline(
            embedding_service=MockEmbeddingService(fail=True),
            llm_service=mock_llm,
            query_rewriter=mock_rewriter,
            chunking_service=small_chunker,
        )

        with pytest.raises(PipelineFailed) as exc_info:
            await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))

        assert exc_info.value.stage == "embedding"
        assert isinstance(exc_info.value.cause, EmbeddingFailed)
        assert mock_llm.calls == []

    @pytest.mark.asyncio
    async def test_synthesis_failure(self, mock_embedder, mock_rewriter, small_chunker) -> None:
        pipeline = ClaimPipeline(
            embedding_service=mock_embedder,
            llm_service=MockLLMService(fail_on_call=1),
            query_rewriter=mock_rewriter,
            chunking_service=small_chunker,
        )

        with pytest.raises(PipelineFailed) as exc_info:
            await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))

        assert exc_info.value.stage == "synthesizing"
        assert isinstance(exc_info.value.cause, LLMError)


class TestAnswerQuestions:
    @pytest.mark.asyncio
    async def test_document_prepared_once(self, pipeline, mock_embedder, mock_llm) -> None:
        source = CountingSource()
        questions = ["knee surgery?", "maternity?", "premium?"]

        results = await pipeline.answer_questions(questions, source)

        assert [r.question for r in results] == questions
        assert all(r.stages == FULL_STAGES for r in results)
        assert source.loads == 1
        assert len(mock_embedder.embed_calls) == 1
        assert mock_embedder.query_calls == questions
        assert all(call["mode"] == AnswerMode.POLICY_QA for call in mock_llm.calls)

    @pytest.mark.asyncio
    async def test_empty_question_list(self, pipeline) -> None:
        with pytest.raises(PipelineFailed) as exc_info:
            await pipeline.answer_questions([], CountingSource())
        assert exc_info.value.stage == "received"

    @pytest.mark.asyncio
    async def test_failure_aborts_batch(self, mock_embedder, mock_rewriter, small_chunker) -> None:
        llm = MockLLMService(fail_on_call=2)
        pipeline = ClaimPipeline(
            embedding_service=mock_embedder,
            llm_service=llm,
            query_rewriter=mock_rewriter,
            chunking_service=small_chunker,
        )

        with pytest.raises(PipelineFailed):
            await pipeline.answer_questions(["q1", "q2", "q3"], CountingSource())

        assert len(llm.calls) == 2


class TestEmbeddingCache:
    def _pipeline(self, embedder, cache) -> ClaimPipeline:
        return ClaimPipeline(
            embedding_service=embedder,
            llm_service=MockLLMService(),
            query_rewriter=MockQueryRewriter(),
            cache_service=cache,
            chunking_service=None,
        )

    @pytest.mark.asyncio
    async def test_second_request_hits_cache(self, mock_embedder) -> None:
        cache = MockCacheService()
        pipeline = self._pipeline(mock_embedder, cache)

        first = await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))
        second = await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))

        assert len(mock_embedder.embed_calls) == 1
        assert len(cache.store) == 1
        key = next(iter(cache.store))
        assert key.startswith("chunk_embeddings:mock-embedder:")
        assert [s.score for s in first.context.chunks] == [s.score for s in second.context.chunks]

    @pytest.mark.asyncio
    async def test_different_document_misses_cache(self, mock_embedder) -> None:
        cache = MockCacheService()
        pipeline = self._pipeline(mock_embedder, cache)

        await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))
        await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT + " Extra clause."))

        assert len(mock_embedder.embed_calls) == 2
        assert len(cache.store) == 2

    @pytest.mark.asyncio
    async def test_cache_errors_fall_through(self, mock_embedder) -> None:
        pipeline = self._pipeline(mock_embedder, MockCacheService(fail=True))

        result = await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))

        assert result.stages[-1] == "completed"
        assert len(mock_embedder.embed_calls) == 1

    @pytest.mark.asyncio
    async def test_dimension_change_misses_cache(self) -> None:
        cache = MockCacheService()
        wide = MockEmbeddingService(dimensions=8)
        narrow = MockEmbeddingService(dimensions=4)

        await self._pipeline(wide, cache).evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))
        result = await self._pipeline(narrow, cache).evaluate(
            "knee", InMemoryDocumentSource(POLICY_TEXT))

        assert result.stages[-1] == "completed"
        assert len(narrow.embed_calls) == 1
        assert len(cache.store) == 2
        assert any(key.startswith("chunk_embeddings:mock-embedder:4:") for key in cache.store)

    @pytest.mark.asyncio
    async def test_cached_vectors_of_wrong_length_are_ignored(self, mock_embedder) -> None:
        cache = MockCacheService()
        pipeline = self._pipeline(mock_embedder, cache)
        await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))
        key = next(iter(cache.store))
        cache.store[key] = [[1.0, 0.0] for _ in cache.store[key]]

        result = await pipeline.evaluate("knee", InMemoryDocumentSource(POLICY_TEXT))

        assert result.stages[-1] == "completed"
        assert len(mock_embedder.embed_calls) == 2
        assert all(len(vector) == 8 for vector in cache.store[key])
