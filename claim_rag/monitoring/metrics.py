"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

claim_requests_total = Counter(
    "claim_requests_total", "Total number of requests handled", ["endpoint"])
claim_request_errors_total = Counter(
    "claim_request_errors_total", "Total number of failed requests", ["endpoint"])
claim_request_latency_seconds = Histogram(
    "claim_request_latency_seconds", "End-to-end request latency in seconds",
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0])

pipeline_stage_duration_seconds = Histogram(
    "pipeline_stage_duration_seconds", "Duration of each pipeline stage", ["stage"],
    buckets=[0.01, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0])

query_rewrite_fallbacks_total = Counter(
    "query_rewrite_fallbacks_total", "Queries answered with the original text after a rewrite failure")

embedding_cache_hits_total = Counter(
    "embedding_cache_hits_total", "Chunk embedding lookups served from cache")
embedding_cache_misses_total = Counter(
    "embedding_cache_misses_total", "Chunk embedding lookups that required the embedder")
