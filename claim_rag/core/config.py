"""Application configuration using Pydantic settings."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore")

    openai_api_key: str
    api_bearer_token: str
    service_name: str = "claim-rag-service"
    service_port: int = 8000
    log_level: str = "INFO"
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_batch_size: int = 64
    embedding_concurrency: int = 8

    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.0
    llm_max_tokens: int = 800

    query_rewrite_enabled: bool = True
    rewrite_model: str = "gpt-4o-mini"

    chunk_size: int = 1000
    chunk_overlap: int = 200
    top_k: int = 5

    # Pre-built index and embedding cache are optional
    qdrant_url: Optional[str] = None
    qdrant_collection_name: str = "policy_chunks"
    redis_url: Optional[str] = None
    redis_pool_size: int = 10
    cache_ttl: int = 3600

    download_timeout_seconds: float = 30.0
    max_upload_size_mb: int = 25

    # Retry configuration
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    retry_backoff_multiplier: float = 2.0


settings = Settings()
