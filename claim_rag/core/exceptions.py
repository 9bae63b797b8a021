"""Custom exceptions for the application."""


class InvalidConfig(Exception):
    """Raised when chunking parameters are invalid."""

    pass


class DimensionMismatch(Exception):
    """Raised when a vector's length differs from the query vector's length."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}")


class EmbeddingFailed(Exception):
    """Raised when embedding generation fails."""

    pass


class DocumentLoadFailed(Exception):
    """Raised when a document cannot be fetched, read or parsed."""

    pass


class LLMError(Exception):
    """Raised when LLM operations fail."""

    pass


class VectorDBError(Exception):
    """Raised when vector database operations fail."""

    pass


class IndexNotConfigured(VectorDBError):
    """Raised when the pre-built index is queried but no Qdrant URL is set."""

    pass


class CacheError(Exception):
    """Raised when cache operations fail."""

    pass


class PipelineFailed(Exception):
    """Raised when a claim pipeline run aborts.

    Attributes:
        stage: Name of the stage that failed.
        cause: The underlying exception.
    """

    def __init__(self, stage: str, cause: Exception) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Pipeline failed during {stage}: {cause}")
