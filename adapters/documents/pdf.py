"""
PDF text extraction on top of pypdf.

Parsing runs in a worker thread so a large upload does not block the event loop.
"""

import asyncio
import io

import structlog
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from telemetry.errors import ExternalDependencyError
from telemetry.services.result import Result

logger = structlog.get_logger(__name__)


class PdfTextExtractor:
    """Implements ``DocumentTextExtractor`` for PDF uploads."""

    def __init__(self, max_pages: int | None = None) -> None:
        self.max_pages = max_pages
        self.logger = logger.bind(component="pdf_text_extractor")

    def _extract(self, document: bytes) -> str:
        reader = PdfReader(io.BytesIO(document))
        pages = reader.pages if self.max_pages is None else reader.pages[: self.max_pages]
        parts = []
        for page in pages:
            page_text = page.extract_text() or ""
            if page_text.strip():
                parts.append(page_text.strip())
        return "\n\n".join(parts)

    async def extract_text(self, document: bytes) -> Result[str, ExternalDependencyError]:
        if not document:
            return Result.ok("")
        try:
            text = await asyncio.to_thread(self._extract, document)
        except (PyPdfError, ValueError, OSError) as e:
            self.logger.warning("pdf_extraction_failed", error=str(e), size=len(document))
            return Result.err(ExternalDependencyError("pypdf", str(e)))

        self.logger.info("pdf_text_extracted", size=len(document), characters=len(text))
        return Result.ok(text)
