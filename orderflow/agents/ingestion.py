import io
import asyncio
import logging
from typing import Optional, Tuple
import httpx
from pdfminer.high_level import extract_text as pdfminer_extract_text

from orderflow.errors import TransientIOError, ValidationError
from orderflow.models.events import DocumentSourceDescriptor
from orderflow.models.results import IngestResult
from orderflow.tools.ocr_tool import OCRTool

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
SUPPORTED_IMAGE_MIMES = {"image/jpeg", "image/png", "image/tiff", "image/webp", "image/bmp"}
REJECTED_BODY_MIMES = ("application/json", "text/html")

def sniff_mime_type(content: bytes, fallback: Optional[str] = None) -> str:
    if content.startswith(b"%PDF"):
        return PDF_MIME
    if content.startswith(b"\x89PNG"):
        return "image/png"
    if content.startswith(b"\xff\xd8"):
        return "image/jpeg"
    return fallback or "application/octet-stream"

def native_pdf_text(content: bytes) -> str:
    return pdfminer_extract_text(io.BytesIO(content)) or ""

class DocumentIngestion:
    """
    Gets the bytes of a document and turns them into text.

    Text is taken from the PDF text layer when there is one; otherwise pages
    are rendered and OCR'd. OCR attempts are bounded in time and count.
    Only OCR errors are retried: a timed-out attempt keeps its worker thread
    busy until tesseract returns, so a timeout ends the extraction.
    """

    def __init__(
        self,
        ocr: OCRTool,
        http_client: httpx.AsyncClient,
        fetch_timeout: float = 10.0,
        ocr_timeout: float = 10.0,
        ocr_max_attempts: int = 2,
        native_confidence: float = 0.95,
        native_min_chars: int = 20,
    ):
        self.ocr = ocr
        self.http_client = http_client
        self.fetch_timeout = fetch_timeout
        self.ocr_timeout = ocr_timeout
        self.ocr_max_attempts = max(1, ocr_max_attempts)
        self.native_confidence = native_confidence
        self.native_min_chars = native_min_chars

    async def fetch(self, source: DocumentSourceDescriptor) -> Tuple[bytes, str]:
        """Returns (content, mime_type). In-memory uploads skip the network."""
        if source.content is not None:
            if not source.content:
                raise ValidationError(f"Empty upload: {source.filename}")
            return source.content, source.mime_type or sniff_mime_type(source.content)

        try:
            response = await self.http_client.get(source.url, timeout=self.fetch_timeout, follow_redirects=True)
        except httpx.TimeoutException as e:
            raise TransientIOError(f"Timed out fetching {source.url}") from e
        except httpx.HTTPError as e:
            raise TransientIOError(f"Failed fetching {source.url}: {e}") from e

        if not response.is_success:
            raise TransientIOError(f"Fetching {source.url} returned {response.status_code}")

        header_mime = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if header_mime.startswith(REJECTED_BODY_MIMES):
            # Media URLs that answer with an error page instead of the file
            raise ValidationError(f"Expected a document from {source.url}, got {header_mime}")
        content = response.content
        if not content:
            raise ValidationError(f"Empty document at {source.url}")

        mime_type = sniff_mime_type(content, fallback=source.mime_type or header_mime or None)
        return content, mime_type

    async def _native_text(self, content: bytes) -> Optional[str]:
        try:
            text = await asyncio.wait_for(asyncio.to_thread(native_pdf_text, content), timeout=self.ocr_timeout)
        except Exception as e:
            logger.warning(f"Native PDF text extraction failed: {e}")
            return None
        text = text.strip()
        if len(text) < self.native_min_chars:
            logger.info(f"PDF has no usable text layer ({len(text)} chars), falling back to OCR")
            return None
        return text

    async def extract_text(self, content: bytes, mime_type: str) -> IngestResult:
        if mime_type != PDF_MIME and mime_type not in SUPPORTED_IMAGE_MIMES:
            return IngestResult(success=False, mime_type=mime_type, error=f"Unsupported content type: {mime_type}")

        if mime_type == PDF_MIME:
            text = await self._native_text(content)
            if text:
                return IngestResult(success=True, text=text, confidence=self.native_confidence,
                                    method="native", mime_type=mime_type)

        last_error = None
        for attempt in range(1, self.ocr_max_attempts + 1):
            try:
                text, confidence = await asyncio.wait_for(
                    asyncio.to_thread(self.ocr.recognize, content, mime_type),
                    timeout=self.ocr_timeout,
                )
            except asyncio.TimeoutError:
                last_error = f"OCR timed out after {self.ocr_timeout}s"
                logger.warning(f"OCR attempt {attempt}/{self.ocr_max_attempts}: {last_error}")
                break
            except Exception as e:
                last_error = f"OCR failed: {e}"
                logger.warning(f"OCR attempt {attempt}/{self.ocr_max_attempts}: {last_error}")
                continue

            if not text:
                last_error = "OCR produced no text"
                break
            return IngestResult(success=True, text=text, confidence=confidence, method="ocr", mime_type=mime_type)

        logger.error(f"Text extraction failed: {last_error}")
        return IngestResult(success=False, mime_type=mime_type, error=last_error)

    async def ingest(self, source: DocumentSourceDescriptor) -> IngestResult:
        try:
            content, mime_type = await self.fetch(source)
        except (TransientIOError, ValidationError) as e:
            logger.error(f"Could not fetch {source.filename}: {e}")
            return IngestResult(success=False, error=str(e))

        result = await self.extract_text(content, mime_type)
        result.content = content
        return result
