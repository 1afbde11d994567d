"""Page rasterizer boundary.

The pipeline only needs two things from a source document: how many pages it
has and a PNG of any one page. ``PdfPlumberRasterizer`` provides both for PDF
files; ``PageImages`` caches rendered pages for the duration of one run so a
page sampled by several stages is rendered once.
"""

from io import BytesIO
from typing import Any, Dict, Optional, Protocol

import pdfplumber

from takeoff.core.exceptions import DocumentReadError
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


class PageRasterizer(Protocol):
    """Renders pages of a source document to PNG bytes."""

    def page_count(self, document: Any) -> int:
        ...

    def render_page(self, document: Any, page_number: int) -> bytes:
        ...

    def close(self) -> None:
        ...


class PdfPlumberRasterizer:
    """PDF rasterizer backed by pdfplumber.

    Opens the document lazily on first use and keeps it open until
    ``close()``.

    Attributes:
        dpi: Render resolution
    """

    def __init__(self, dpi: int = 150):
        self.dpi = dpi
        self._pdf = None
        self._opened_path: Optional[str] = None

    def _open(self, document: Any):
        path = str(document)
        if self._pdf is not None and self._opened_path == path:
            return self._pdf

        self.close()
        try:
            self._pdf = pdfplumber.open(document)
        except Exception as e:
            LOGGER.error(f"Failed to open document {path}: {e}")
            raise DocumentReadError(f"Cannot open document {path}: {e}", original_error=e)

        self._opened_path = path
        LOGGER.info(f"Opened {path} with {len(self._pdf.pages)} pages")
        return self._pdf

    def page_count(self, document: Any) -> int:
        return len(self._open(document).pages)

    def render_page(self, document: Any, page_number: int) -> bytes:
        """Render a 1-indexed page to PNG bytes.

        Raises:
            DocumentReadError: If the page does not exist or cannot be drawn
        """
        pdf = self._open(document)
        if page_number < 1 or page_number > len(pdf.pages):
            raise DocumentReadError(
                f"Page {page_number} out of range (document has {len(pdf.pages)} pages)"
            )

        try:
            page_image = pdf.pages[page_number - 1].to_image(resolution=self.dpi)
            buffer = BytesIO()
            page_image.original.save(buffer, format="PNG")
        except Exception as e:
            raise DocumentReadError(f"Failed to render page {page_number}: {e}", original_error=e)

        return buffer.getvalue()

    def close(self) -> None:
        if self._pdf is not None:
            try:
                self._pdf.close()
            finally:
                self._pdf = None
                self._opened_path = None


class PageImages:
    """Per-run cache of rendered page images."""

    def __init__(self, rasterizer: PageRasterizer, document: Any):
        self.rasterizer = rasterizer
        self.document = document
        self._cache: Dict[int, bytes] = {}

    def get(self, page_number: int) -> bytes:
        image = self._cache.get(page_number)
        if image is None:
            image = self.rasterizer.render_page(self.document, page_number)
            self._cache[page_number] = image
            LOGGER.debug(f"Rendered page {page_number} ({len(image) / 1024:.0f} KB)")
        return image

    @property
    def cached_pages(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()
