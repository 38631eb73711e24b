import time
import httpx
import pytest
from unittest.mock import MagicMock, patch

from orderflow.agents.ingestion import DocumentIngestion, sniff_mime_type
from orderflow.errors import TransientIOError, ValidationError
from orderflow.models.events import DocumentSourceDescriptor

PDF_BYTES = b"%PDF-1.4 fake pdf body"
PNG_BYTES = b"\x89PNG\r\n\x1a\n fake png"
NATIVE_TEXT = "Distribuidora El Sol S.A.\nFactura 0001-00004567\nTotal: $ 29.645,00"

def make_ingestion(ocr=None, handler=None, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler or (lambda r: httpx.Response(404))))
    return DocumentIngestion(ocr or MagicMock(), client, **kwargs)

def test_sniff_mime_type():
    assert sniff_mime_type(PDF_BYTES) == "application/pdf"
    assert sniff_mime_type(PNG_BYTES) == "image/png"
    assert sniff_mime_type(b"\xff\xd8\xff\xe0") == "image/jpeg"
    assert sniff_mime_type(b"???", fallback="image/tiff") == "image/tiff"

@pytest.mark.asyncio
async def test_fetch_in_memory_upload():
    ingestion = make_ingestion()
    content, mime = await ingestion.fetch(DocumentSourceDescriptor(content=PDF_BYTES, filename="f.pdf"))
    assert content == PDF_BYTES
    assert mime == "application/pdf"

@pytest.mark.asyncio
async def test_fetch_url():
    def handler(request):
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})
    ingestion = make_ingestion(handler=handler)
    content, mime = await ingestion.fetch(DocumentSourceDescriptor(url="https://media.test/doc"))
    assert content == PNG_BYTES
    assert mime == "image/png"

@pytest.mark.asyncio
async def test_fetch_rejects_error_pages():
    def handler(request):
        return httpx.Response(200, json={"error": "expired media url"})
    ingestion = make_ingestion(handler=handler)
    with pytest.raises(ValidationError):
        await ingestion.fetch(DocumentSourceDescriptor(url="https://media.test/doc"))

@pytest.mark.asyncio
async def test_fetch_non_2xx_is_transient():
    ingestion = make_ingestion(handler=lambda r: httpx.Response(500))
    with pytest.raises(TransientIOError):
        await ingestion.fetch(DocumentSourceDescriptor(url="https://media.test/doc"))

@pytest.mark.asyncio
async def test_fetch_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)
    ingestion = make_ingestion(handler=handler)
    with pytest.raises(TransientIOError):
        await ingestion.fetch(DocumentSourceDescriptor(url="https://media.test/doc"))

@pytest.mark.asyncio
async def test_native_text_wins_for_pdfs():
    ocr = MagicMock()
    ingestion = make_ingestion(ocr=ocr)
    with patch("orderflow.agents.ingestion.native_pdf_text", return_value=NATIVE_TEXT):
        result = await ingestion.extract_text(PDF_BYTES, "application/pdf")

    assert result.success
    assert result.method == "native"
    assert result.confidence == pytest.approx(0.95)
    assert "0001-00004567" in result.text
    ocr.recognize.assert_not_called()

@pytest.mark.asyncio
async def test_scanned_pdf_falls_back_to_ocr():
    ocr = MagicMock()
    ocr.recognize.return_value = ("Total: 100", 0.82)
    ingestion = make_ingestion(ocr=ocr)
    with patch("orderflow.agents.ingestion.native_pdf_text", return_value="  \n"):
        result = await ingestion.extract_text(PDF_BYTES, "application/pdf")

    assert result.success
    assert result.method == "ocr"
    assert result.confidence == pytest.approx(0.82)
    ocr.recognize.assert_called_once_with(PDF_BYTES, "application/pdf")

@pytest.mark.asyncio
async def test_images_go_straight_to_ocr():
    ocr = MagicMock()
    ocr.recognize.return_value = ("Total: 100", 0.7)
    ingestion = make_ingestion(ocr=ocr)
    with patch("orderflow.agents.ingestion.native_pdf_text") as native:
        result = await ingestion.extract_text(PNG_BYTES, "image/png")
    native.assert_not_called()
    assert result.method == "ocr"

@pytest.mark.asyncio
async def test_ocr_retries_are_bounded():
    ocr = MagicMock()
    ocr.recognize.side_effect = RuntimeError("tesseract crashed")
    ingestion = make_ingestion(ocr=ocr, ocr_max_attempts=3)
    result = await ingestion.extract_text(PNG_BYTES, "image/png")

    assert not result.success
    assert "tesseract crashed" in result.error
    assert ocr.recognize.call_count == 3

@pytest.mark.asyncio
async def test_ocr_timeout_is_not_retried():
    ocr = MagicMock()
    ocr.recognize.side_effect = lambda content, mime: time.sleep(0.3) or ("late", 0.9)
    ingestion = make_ingestion(ocr=ocr, ocr_timeout=0.05, ocr_max_attempts=3)
    result = await ingestion.extract_text(PNG_BYTES, "image/png")

    assert not result.success
    assert "timed out" in result.error
    assert ocr.recognize.call_count == 1

@pytest.mark.asyncio
async def test_empty_ocr_is_not_retried():
    ocr = MagicMock()
    ocr.recognize.return_value = ("", 0.0)
    ingestion = make_ingestion(ocr=ocr, ocr_max_attempts=3)
    result = await ingestion.extract_text(PNG_BYTES, "image/png")

    assert not result.success
    assert ocr.recognize.call_count == 1

@pytest.mark.asyncio
async def test_unsupported_content_type():
    ingestion = make_ingestion()
    result = await ingestion.extract_text(b"hello", "text/plain")
    assert not result.success
    assert "Unsupported" in result.error

@pytest.mark.asyncio
async def test_ingest_reports_fetch_failure():
    ingestion = make_ingestion(handler=lambda r: httpx.Response(404))
    result = await ingestion.ingest(DocumentSourceDescriptor(url="https://media.test/missing"))
    assert not result.success
    assert "404" in result.error

@pytest.mark.asyncio
async def test_ingest_end_to_end():
    ocr = MagicMock()
    ingestion = make_ingestion(ocr=ocr)
    with patch("orderflow.agents.ingestion.native_pdf_text", return_value=NATIVE_TEXT):
        result = await ingestion.ingest(DocumentSourceDescriptor(content=PDF_BYTES, filename="f.pdf"))
    assert result.success
    assert result.content == PDF_BYTES
    assert result.mime_type == "application/pdf"
