"""Health check service for dependency verification."""

import time
from typing import Any, Dict

from openai import AsyncOpenAI

from claim_rag.core.config import settings
from claim_rag.services.cache import CacheService
from claim_rag.services.vector_db import VectorDBService


async def check_qdrant(vector_db: VectorDBService) -> Dict[str, Any]:
    """
    Check Qdrant connectivity and health.

    Args:
        vector_db: VectorDBService instance.

    Returns:
        Health status dictionary.
    """
    if not vector_db.configured:
        return {"status": "not_configured"}
    try:
        start_time = time.time()
        if not vector_db.client:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        collections = await vector_db.client.get_collections()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "collections": len(collections.collections),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_redis(cache_service: CacheService) -> Dict[str, Any]:
    """
    Check Redis connectivity and health.

    Args:
        cache_service: CacheService instance.

    Returns:
        Health status dictionary.
    """
    if not settings.redis_url and not cache_service.enabled:
        return {"status": "not_configured"}
    try:
        start_time = time.time()
        if not cache_service.enabled:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        await cache_service.ping()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_openai(client: AsyncOpenAI) -> Dict[str, Any]:
    """
    Check OpenAI API connectivity.

    Args:
        client: OpenAI client shared with the embedding service.

    Returns:
        Health status dictionary.
    """
    if not settings.openai_api_key:
        return {"status": "not_configured", "error": "API key not set"}
    try:
        start_time = time.time()
        await client.models.list()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        error_msg = str(e).lower()
        if "api key" in error_msg or "authentication" in error_msg:
            return {"status": "unhealthy", "error": "Invalid API key"}
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }
