import os

os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ["API_BEARER_TOKEN"] = "test-token"
os.environ.pop("QDRANT_URL", None)
os.environ.pop("REDIS_URL", None)

import tempfile
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from claim_rag.core.exceptions import CacheError, EmbeddingFailed, LLMError
from claim_rag.models.document import Chunk, ScoredChunk, TextSegment
from claim_rag.services.chunking import ChunkingService
from claim_rag.services.claim_pipeline import ClaimPipeline
from claim_rag.services.document_loader import DocumentSource
from claim_rag.services.llm import AnswerMode
from claim_rag.services.ranking import Retriever

KEYWORDS = ["knee", "surgery", "waiting", "maternity", "dental", "cataract", "premium", "hospital"]

POLICY_TEXT = (
    "Section 1. Knee surgery is covered after a waiting period of 24 months "
    "from the policy start date.\n\n"
    "Section 2. Maternity expenses are covered after a waiting period of 9 months "
    "and are limited to two deliveries.\n\n"
    "Section 3. Dental treatment is excluded unless it follows an accident "
    "requiring hospital admission.\n\n"
    "Section 4. Cataract surgery is covered up to 40000 per eye.\n\n"
    "Section 5. The premium is payable annually in advance."
)


def make_chunk(index: int, content: str = "", source: str = "policy.pdf") -> Chunk:
    return Chunk(
        id=f"chunk-{index}",
        content=content or f"chunk {index}",
        index=index,
        start_index=index * 100,
        source=source,
    )


def make_scored(index: int, score: float) -> ScoredChunk:
    return ScoredChunk(chunk=make_chunk(index), score=score, chunk_index=index)


def keyword_vector(text: str) -> List[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in KEYWORDS]


def embeddings_response(vectors: List[List[float]], reverse: bool = False) -> SimpleNamespace:
    items = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    if reverse:
        items.reverse()
    return SimpleNamespace(data=items)


def chat_response(content: Optional[str]) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )


def failing_temp_file(created: List[str]):
    """NamedTemporaryFile replacement that creates the file but fails on write."""
    real_named_temporary_file = tempfile.NamedTemporaryFile

    def factory(*args, **kwargs):
        tmp = real_named_temporary_file(*args, **kwargs)
        created.append(tmp.name)

        def write(data):
            raise OSError("No space left on device")

        tmp.write = write
        return tmp

    return factory


class MockEmbeddingService:
    """Deterministic keyword-count embedder."""

    def __init__(self, fail: bool = False, dimensions: int = len(KEYWORDS)) -> None:
        self.model = "mock-embedder"
        self.dimensions = dimensions
        self.fail = fail
        self.embed_calls: List[List[str]] = []
        self.query_calls: List[str] = []

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        if self.fail:
            raise EmbeddingFailed("embedder unavailable")
        self.embed_calls.append(list(texts))
        return [keyword_vector(text)[: self.dimensions] for text in texts]

    async def generate_embedding(self, text: str) -> List[float]:
        if self.fail:
            raise EmbeddingFailed("embedder unavailable")
        self.query_calls.append(text)
        return keyword_vector(text)[: self.dimensions]


class MockLLMService:
    """Records synthesis calls and returns a canned answer."""

    def __init__(self, answer: str = "Mock answer", fail_on_call: Optional[int] = None) -> None:
        self.answer = answer
        self.fail_on_call = fail_on_call
        self.calls: List[Dict[str, Any]] = []

    async def synthesize(self, context_text: str, query: str, mode: AnswerMode = AnswerMode.CLAIM_DECISION) -> str:
        self.calls.append({"context": context_text, "query": query, "mode": mode})
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise LLMError("model unavailable")
        return self.answer


class MockQueryRewriter:
    def __init__(self, suffix: str = "") -> None:
        self.suffix = suffix
        self.calls: List[str] = []

    async def rewrite(self, question: str) -> str:
        self.calls.append(question)
        return question + self.suffix


class MockCacheService:
    """In-memory stand-in for the Redis cache."""

    def __init__(self, fail: bool = False) -> None:
        self.enabled = True
        self.fail = fail
        self.store: Dict[str, Any] = {}

    async def get_json(self, key: str) -> Optional[Any]:
        if self.fail:
            raise CacheError("redis down")
        return self.store.get(key)

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if self.fail:
            raise CacheError("redis down")
        self.store[key] = value


class MockIndex(Retriever):
    """Pre-built index returning fixed results."""

    def __init__(self, results: List[ScoredChunk]) -> None:
        self.configured = True
        self.results = results
        self.queries: List[List[float]] = []

    async def retrieve(self, query_vector: List[float], top_k: int) -> List[ScoredChunk]:
        self.queries.append(query_vector)
        return self.results[:top_k]


class CountingSource(DocumentSource):
    """Document source that counts how often it is loaded."""

    def __init__(self, text: str = POLICY_TEXT, source: str = "policy.txt") -> None:
        self.text = text
        self.source = source
        self.loads = 0

    async def load(self) -> List[TextSegment]:
        self.loads += 1
        return [TextSegment(content=self.text, source=self.source)]


@pytest.fixture
def mock_embedder() -> MockEmbeddingService:
    return MockEmbeddingService()


@pytest.fixture
def mock_llm() -> MockLLMService:
    return MockLLMService()


@pytest.fixture
def mock_rewriter() -> MockQueryRewriter:
    return MockQueryRewriter()


@pytest.fixture
def small_chunker() -> ChunkingService:
    return ChunkingService(chunk_size=160, chunk_overlap=20)


@pytest.fixture
def pipeline(
    mock_embedder: MockEmbeddingService,
    mock_llm: MockLLMService,
    mock_rewriter: MockQueryRewriter,
    small_chunker: ChunkingService,
) -> ClaimPipeline:
    return ClaimPipeline(
        embedding_service=mock_embedder,
        llm_service=mock_llm,
        query_rewriter=mock_rewriter,
        chunking_service=small_chunker,
        top_k=2,
    )
