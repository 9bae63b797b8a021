"""Policy document loaders and document sources."""

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import docx
import httpx
from pypdf import PdfReader

from claim_rag.core.config import settings
from claim_rag.core.exceptions import DocumentLoadFailed
from claim_rag.models.document import TextSegment

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".txt", ".docx")


class DocumentLoader(ABC):
    """Extracts text segments from a file on disk."""

    extensions: tuple = ()

    @abstractmethod
    def load(self, path: str, source: Optional[str] = None) -> List[TextSegment]:
        """
        Read a file into text segments.

        Args:
            path: Local file path.
            source: Identifier stored on each segment; defaults to the file name.

        Returns:
            Segments in document order.
        """
        pass


class PdfDocumentLoader(DocumentLoader):
    """One segment per PDF page, carrying its 1-based page number."""

    extensions = (".pdf",)

    def load(self, path: str, source: Optional[str] = None) -> List[TextSegment]:
        source = source or Path(path).name
        reader = PdfReader(path)
        logger.info(f"Processing PDF: {source}, pages: {len(reader.pages)}")

        segments = []
        for page_num, page in enumerate(reader.pages, start=1):
            text = page.extract_text() or ""
            if not text.strip():
                logger.debug(f"Page {page_num} of {source} has no extractable text")
                continue
            segments.append(
                TextSegment(
                    content=text,
                    source=source,
                    page_number=page_num,
                    metadata={"parser": "pdf"},
                )
            )
        return segments


class DocxDocumentLoader(DocumentLoader):
    extensions = (".docx",)

    def load(self, path: str, source: Optional[str] = None) -> List[TextSegment]:
        source = source or Path(path).name
        document = docx.Document(path)
        text = "\n".join(para.text for para in document.paragraphs if para.text.strip())
        if not text:
            return []
        return [TextSegment(content=text, source=source, metadata={"parser": "docx"})]


class TextDocumentLoader(DocumentLoader):
    extensions = (".txt",)

    def load(self, path: str, source: Optional[str] = None) -> List[TextSegment]:
        source = source or Path(path).name
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            text = f.read()
        if not text:
            return []
        return [TextSegment(content=text, source=source, metadata={"parser": "text"})]


_LOADERS: List[DocumentLoader] = [
    PdfDocumentLoader(),
    DocxDocumentLoader(),
    TextDocumentLoader(),
]


def get_loader_for_file(path: str) -> DocumentLoader:
    """
    Pick a loader from the file extension.

    Args:
        path: File path or name.

    Returns:
        Loader able to read the file.

    Raises:
        DocumentLoadFailed: For legacy .doc files and unsupported types.
    """
    extension = Path(path).suffix.lower()
    if extension == ".doc":
        raise DocumentLoadFailed(
            "DOC files are not supported. Please convert to DOCX or PDF format.")

    for loader in _LOADERS:
        if extension in loader.extensions:
            return loader

    raise DocumentLoadFailed(
        f"Unsupported file type: {extension or 'unknown'}. "
        f"Supported types: {', '.join(SUPPORTED_EXTENSIONS)}"
    )


def _require_content(segments: List[TextSegment], source: str) -> List[TextSegment]:
    if not any(segment.content.strip() for segment in segments):
        raise DocumentLoadFailed(f"No content could be extracted from {source}")
    return segments


async def _load_in_executor(
    loader: DocumentLoader, path: str, source: str
) -> List[TextSegment]:
    loop = asyncio.get_running_loop()
    try:
        segments = await loop.run_in_executor(None, loader.load, path, source)
    except DocumentLoadFailed:
        raise
    except Exception as e:
        raise DocumentLoadFailed(f"Failed to parse {source}: {str(e)}") from e
    return _require_content(segments, source)


class DocumentSource(ABC):
    """Where a request's policy document comes from."""

    @abstractmethod
    async def load(self) -> List[TextSegment]:
        """
        Load the document as text segments.

        Raises:
            DocumentLoadFailed: If the document cannot be fetched or parsed,
                or holds no text.
        """
        pass


class FileDocumentSource(DocumentSource):
    """A policy file already on local disk (e.g. a staged upload)."""

    def __init__(self, path: str, source: Optional[str] = None) -> None:
        self.path = path
        self.source = source or Path(path).name

    async def load(self) -> List[TextSegment]:
        loader = get_loader_for_file(self.source)
        if not os.path.exists(self.path):
            raise DocumentLoadFailed(f"File not found: {self.path}")
        return await _load_in_executor(loader, self.path, self.source)


class UrlDocumentSource(DocumentSource):
    """A policy document fetched over HTTP(S)."""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise DocumentLoadFailed(f"Invalid document URL: {url}")
        self.url = url
        self.client = client
        self.timeout = timeout or settings.download_timeout_seconds

    async def _download(self) -> httpx.Response:
        try:
            if self.client is not None:
                response = await self.client.get(self.url)
            else:
                async with httpx.AsyncClient(
                    timeout=self.timeout, follow_redirects=True
                ) as client:
                    response = await client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DocumentLoadFailed(
                f"Failed to fetch document from {self.url}: {str(e)}") from e
        return response

    def _suffix_for(self, response: httpx.Response) -> Optional[str]:
        path = urlparse(self.url).path.lower()
        content_type = response.headers.get("content-type", "").lower()
        if path.endswith(".pdf") or "application/pdf" in content_type:
            return ".pdf"
        if path.endswith(".docx") or "wordprocessingml" in content_type:
            return ".docx"
        return None

    async def load(self) -> List[TextSegment]:
        logger.info(f"Downloading document from {self.url}")
        response = await self._download()

        suffix = self._suffix_for(response)
        if suffix is None:
            return _require_content(
                [TextSegment(content=response.text, source=self.url,
                             metadata={"parser": "text"})],
                self.url,
            )

        tmp = tempfile.NamedTemporaryFile(suffix=suffix, delete=False)
        tmp_path = tmp.name
        try:
            with tmp:
                tmp.write(response.content)
            return await _load_in_executor(
                get_loader_for_file(tmp_path), tmp_path, self.url)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)


class InMemoryDocumentSource(DocumentSource):
    """Policy text supplied directly by the caller."""

    def __init__(self, text: str, source: str = "inline") -> None:
        self.text = text
        self.source = source

    async def load(self) -> List[TextSegment]:
        return _require_content(
            [TextSegment(content=self.text, source=self.source)], self.source)
