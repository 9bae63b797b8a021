"""Health check utilities."""

from typing import Dict

from openai import AsyncOpenAI

from claim_rag.services.cache import CacheService
from claim_rag.services.health import check_openai, check_qdrant, check_redis
from claim_rag.services.vector_db import VectorDBService


async def check_all_dependencies(
    vector_db: VectorDBService,
    cache_service: CacheService,
    openai_client: AsyncOpenAI,
) -> Dict:
    """
    Check all service dependencies.

    Optional dependencies that are not configured do not affect the overall
    status.

    Args:
        vector_db: Vector database service.
        cache_service: Cache service.
        openai_client: OpenAI client.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    services = {
        "qdrant": await check_qdrant(vector_db),
        "redis": await check_redis(cache_service),
        "openai": await check_openai(openai_client),
    }

    overall_status = "healthy"
    for status in services.values():
        if status.get("status") == "unhealthy":
            overall_status = "unhealthy"

    return {"status": overall_status, "services": services}


async def check_readiness(
    vector_db: VectorDBService,
    cache_service: CacheService,
) -> Dict:
    """
    Check service readiness.

    The service is ready when every configured backing store answers;
    unconfigured ones are reported as None.

    Args:
        vector_db: Vector database service.
        cache_service: Cache service.

    Returns:
        Readiness status dictionary.
    """
    qdrant_status = (await check_qdrant(vector_db)).get("status")
    redis_status = (await check_redis(cache_service)).get("status")

    def _flag(status: str):
        if status == "not_configured":
            return None
        return status == "healthy"

    result = {
        "qdrant": _flag(qdrant_status),
        "redis": _flag(redis_status),
    }
    result["ready"] = all(flag is not False for flag in result.values())
    return result
