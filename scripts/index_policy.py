"""Script to index a policy document into Qdrant for pre-indexed claim queries."""

import argparse
import asyncio
from pathlib import Path

from claim_rag.core.config import settings
from claim_rag.services.chunking import ChunkingService
from claim_rag.services.document_loader import FileDocumentSource
from claim_rag.services.embedding import EmbeddingService
from claim_rag.services.retry import retry_with_backoff
from claim_rag.services.vector_db import VectorDBService


async def index_policy(path: str, source: str) -> int:
    """
    Load, chunk, embed and upsert one policy document.

    Chunks previously indexed under the same source are replaced.

    Args:
        path: Local policy file (.pdf, .txt or .docx).
        source: Identifier stored with every chunk.

    Returns:
        Number of chunks indexed.
    """
    if not settings.qdrant_url:
        raise SystemExit("QDRANT_URL is not set")

    segments = await FileDocumentSource(path, source=source).load()
    chunks = ChunkingService().chunk(segments)
    print(f"Loaded {len(segments)} segments, {len(chunks)} chunks from {source}")

    embeddings = await EmbeddingService().embed_texts([chunk.content for chunk in chunks])

    vector_db = VectorDBService()
    await vector_db.connect()
    try:
        await retry_with_backoff(lambda: vector_db.delete_source(source))
        await retry_with_backoff(lambda: vector_db.upsert_chunks(chunks, embeddings))
    finally:
        await vector_db.disconnect()

    print(f"Indexed {len(chunks)} chunks into {settings.qdrant_collection_name}")
    return len(chunks)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", help="Policy document to index")
    parser.add_argument("--source", help="Source identifier (defaults to the file name)")
    args = parser.parse_args()

    asyncio.run(index_policy(args.path, args.source or Path(args.path).name))


if __name__ == "__main__":
    main()
