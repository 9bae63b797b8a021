"""Claim Service: policy Q&A and claim evaluation endpoints."""

import logging
import os
import secrets
import tempfile
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field
from starlette.responses import Response

from claim_rag.api.health import check_all_dependencies, check_readiness
from claim_rag.core.config import settings
from claim_rag.core.dependencies import get_pipeline, services
from claim_rag.core.exceptions import (
    DimensionMismatch,
    DocumentLoadFailed,
    EmbeddingFailed,
    IndexNotConfigured,
    InvalidConfig,
    LLMError,
    PipelineFailed,
    VectorDBError,
)
from claim_rag.models.response import ClaimDecision, PipelineResult
from claim_rag.monitoring.metrics import (
    claim_request_errors_total,
    claim_request_latency_seconds,
    claim_requests_total,
)
from claim_rag.services.claim_pipeline import ClaimPipeline
from claim_rag.services.document_loader import (
    SUPPORTED_EXTENSIONS,
    FileDocumentSource,
    UrlDocumentSource,
    get_loader_for_file,
)
from claim_rag.services.llm import AnswerMode

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Claim Service started")
    yield
    await services.shutdown()
    logger.info("Claim Service stopped")


app = FastAPI(title="Claim Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

bearer_scheme = HTTPBearer(auto_error=False)


def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """Reject requests without the configured bearer token."""
    if credentials is None or not secrets.compare_digest(
        credentials.credentials, settings.api_bearer_token
    ):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )


class HackRxRequest(BaseModel):
    """Batch policy Q&A request."""

    documents: str = Field(description="URL of the policy document")
    questions: List[str]


class HackRxResponse(BaseModel):
    answers: List[str]


class EvaluateUrlRequest(BaseModel):
    url: str
    question: str


class IndexQueryRequest(BaseModel):
    question: str
    top_k: int = Field(default=settings.top_k, ge=1, le=50)


class SourceInfo(BaseModel):
    chunk_index: int
    source: str
    page_number: Optional[int] = None
    score: float


class ClaimResponse(BaseModel):
    """Claim evaluation response model."""

    answer: str
    decision: Optional[ClaimDecision] = None
    rewritten_query: str
    sources: List[SourceInfo]
    stages: List[str]
    latency_ms: float


def status_code_for(error: Exception) -> int:
    """
    Map a pipeline or intake error to an HTTP status code.

    Args:
        error: PipelineFailed or an intake error raised before the pipeline.

    Returns:
        HTTP status code.
    """
    cause = error.cause if isinstance(error, PipelineFailed) else error
    if isinstance(cause, (ValueError, DocumentLoadFailed)):
        return 400
    if isinstance(cause, IndexNotConfigured):
        return 503
    if isinstance(cause, (InvalidConfig, DimensionMismatch)):
        return 500
    if isinstance(cause, (EmbeddingFailed, LLMError, VectorDBError)):
        return 502
    return 500


async def _tracked(endpoint: str, call: Callable[[], Awaitable]):
    start_time = time.time()
    claim_requests_total.labels(endpoint=endpoint).inc()
    try:
        return await call()
    except (PipelineFailed, DocumentLoadFailed) as e:
        claim_request_errors_total.labels(endpoint=endpoint).inc()
        status_code = status_code_for(e)
        logger.error(f"{endpoint} failed with {status_code}: {str(e)}")
        raise HTTPException(status_code=status_code, detail=str(e)) from e
    finally:
        claim_request_latency_seconds.observe(time.time() - start_time)


def _to_claim_response(result: PipelineResult, start_time: float) -> ClaimResponse:
    latency_ms = (time.time() - start_time) * 1000
    logger.info(f"Request {result.request_id} processed in {latency_ms:.2f}ms")
    return ClaimResponse(
        answer=result.answer,
        decision=ClaimDecision.from_text(result.answer),
        rewritten_query=result.rewritten_query,
        sources=[
            SourceInfo(
                chunk_index=scored.chunk_index,
                source=scored.chunk.source,
                page_number=scored.chunk.page_number,
                score=scored.score,
            )
            for scored in result.context.chunks
        ],
        stages=result.stages,
        latency_ms=latency_ms,
    )


@app.post(
    "/api/v1/hackrx/run",
    response_model=HackRxResponse,
    dependencies=[Depends(verify_token)],
)
async def hackrx_run(
    request: HackRxRequest, pipeline: ClaimPipeline = Depends(get_pipeline)
) -> HackRxResponse:
    """
    Answer a list of questions about a policy document fetched by URL.

    Args:
        request: Document URL and questions.

    Returns:
        One answer per question, in order.
    """

    async def run() -> HackRxResponse:
        document = UrlDocumentSource(request.documents)
        results = await pipeline.answer_questions(
            request.questions, document, mode=AnswerMode.POLICY_QA)
        return HackRxResponse(answers=[result.answer for result in results])

    return await _tracked("hackrx_run", run)


@app.post(
    "/api/v1/claims/evaluate",
    response_model=ClaimResponse,
    dependencies=[Depends(verify_token)],
)
async def evaluate_upload(
    file: UploadFile = File(...),
    question: str = Form(...),
    pipeline: ClaimPipeline = Depends(get_pipeline),
) -> ClaimResponse:
    """
    Evaluate a claim against an uploaded policy document.

    The upload is staged to a temporary file that is removed once the
    request finishes, whether or not it succeeded.
    """
    start_time = time.time()
    filename = file.filename or "upload"

    async def run() -> ClaimResponse:
        get_loader_for_file(filename)
        content = await file.read()
        if not content:
            raise DocumentLoadFailed("Uploaded file is empty")
        if len(content) > settings.max_upload_size_mb * 1024 * 1024:
            raise DocumentLoadFailed(
                f"File too large, maximum size is {settings.max_upload_size_mb}MB")

        tmp = tempfile.NamedTemporaryFile(suffix=Path(filename).suffix.lower(), delete=False)
        tmp_path = tmp.name
        try:
            with tmp:
                tmp.write(content)
            result = await pipeline.evaluate(
                question, FileDocumentSource(tmp_path, source=filename))
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
        return _to_claim_response(result, start_time)

    return await _tracked("claims_evaluate", run)


@app.post(
    "/api/v1/claims/evaluate-url",
    response_model=ClaimResponse,
    dependencies=[Depends(verify_token)],
)
async def evaluate_url(
    request: EvaluateUrlRequest, pipeline: ClaimPipeline = Depends(get_pipeline)
) -> ClaimResponse:
    """Evaluate a claim against a policy document fetched by URL."""
    start_time = time.time()

    async def run() -> ClaimResponse:
        result = await pipeline.evaluate(
            request.question, UrlDocumentSource(request.url))
        return _to_claim_response(result, start_time)

    return await _tracked("claims_evaluate_url", run)


@app.post(
    "/api/v1/claims/query",
    response_model=ClaimResponse,
    dependencies=[Depends(verify_token)],
)
async def query_index(
    request: IndexQueryRequest, pipeline: ClaimPipeline = Depends(get_pipeline)
) -> ClaimResponse:
    """Evaluate a claim against the pre-built policy index."""
    start_time = time.time()

    async def run() -> ClaimResponse:
        result = await pipeline.evaluate(request.question, top_k=request.top_k)
        return _to_claim_response(result, start_time)

    return await _tracked("claims_query", run)


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(
        services.vector_db, services.cache_service, services.embedding_service.client
    )
    return {"service": settings.service_name, **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services.vector_db, services.cache_service)
    return {"service": settings.service_name, **result}


@app.get("/status")
async def status() -> dict:
    """Service configuration summary."""
    return {
        "service": settings.service_name,
        "embedding_model": settings.embedding_model,
        "llm_model": settings.llm_model,
        "query_rewrite_enabled": settings.query_rewrite_enabled,
        "chunk_size": settings.chunk_size,
        "chunk_overlap": settings.chunk_overlap,
        "top_k": settings.top_k,
        "vector_index_configured": services.vector_db.configured,
        "embedding_cache_enabled": services.cache_service.enabled,
        "supported_formats": list(SUPPORTED_EXTENSIONS),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.service_port)
