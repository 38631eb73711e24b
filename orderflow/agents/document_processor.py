import logging
from typing import Optional

from orderflow.models.counterpart import Counterpart
from orderflow.models.document import Document, DocumentSource, DocumentStatus
from orderflow.models.events import DocumentSourceDescriptor
from orderflow.models.results import HandlerResponse
from orderflow.repositories.document import DocumentRepository
from orderflow.agents.extraction import InvoiceExtractor
from orderflow.agents.ingestion import DocumentIngestion
from orderflow.agents.matching import OrderMatcher
from orderflow.tools.storage import GridFSStorage

logger = logging.getLogger(__name__)

class DocumentProcessor:
    """
    record -> fetch + text -> store -> invoice fields -> match to an order.

    The Document is recorded as `pending` before anything can fail, so every
    received document leaves a trace. Every failure after that ends with the
    Document marked `error` and a failed response.
    """

    def __init__(
        self,
        ingestion: DocumentIngestion,
        extractor: InvoiceExtractor,
        matcher: OrderMatcher,
        documents: DocumentRepository,
        storage: GridFSStorage,
    ):
        self.ingestion = ingestion
        self.extractor = extractor
        self.matcher = matcher
        self.documents = documents
        self.storage = storage

    async def process(
        self,
        owner_id: str,
        source: DocumentSourceDescriptor,
        counterpart: Optional[Counterpart] = None,
        origin: DocumentSource = DocumentSource.MESSAGING,
    ) -> HandlerResponse:
        try:
            document = await self.documents.create(Document(
                owner_id=owner_id,
                counterpart_id=counterpart.counterpart_id if counterpart else None,
                filename=source.filename,
                mime_type=source.mime_type,
                source=origin,
            ))
        except Exception as e:
            logger.error(f"Could not record document {source.filename}: {e}")
            return HandlerResponse(success=False, message="Document could not be received", error=str(e))

        try:
            return await self._process_recorded(document, source, counterpart)
        except Exception as e:
            logger.error(f"Processing document {document.document_id} failed: {e}")
            return await self._fail(document.document_id, "Document processing failed", str(e))

    async def _process_recorded(self, document: Document, source: DocumentSourceDescriptor,
                                counterpart: Optional[Counterpart]) -> HandlerResponse:
        document_id = document.document_id
        await self.documents.set_status(document_id, DocumentStatus.PROCESSING)

        ingested = await self.ingestion.ingest(source)
        if ingested.content is None:
            return await self._fail(document_id, "Document could not be received", ingested.error)

        storage_ref = await self.storage.put(
            source.filename, ingested.content, ingested.mime_type,
            metadata={"owner_id": document.owner_id, "source": document.source.value, "document_id": document_id},
        )
        await self.documents.attach_file(document_id, storage_ref, ingested.mime_type)
        logger.info(f"Document {document_id} stored as {storage_ref}")

        if not ingested.success:
            return await self._fail(document_id, "Could not read the document", ingested.error)

        extracted = self.extractor.extract(ingested.text)
        if self.extractor.is_low_confidence(extracted):
            logger.warning(f"Document {document_id}: low extraction confidence {extracted.confidence:.2f}, flag for review")
        await self.documents.set_status(
            document_id,
            DocumentStatus.PROCESSED,
            extracted_text=ingested.text,
            confidence=ingested.confidence,
            extraction_method=ingested.method,
            invoice_data=extracted.model_dump(),
        )

        if counterpart is None:
            return HandlerResponse(success=True, message="Document processed, no counterpart to match",
                                   document_id=document_id, status=DocumentStatus.PROCESSED.value)

        resolved = await self.matcher.resolve(counterpart, extracted, document)
        if resolved.error:
            response = await self._fail(document_id, "Document could not be matched to an order", resolved.error)
            response.order_id = resolved.order_id
            return response
        if resolved.skipped:
            return HandlerResponse(success=True, message="Automatic flow disabled for this counterpart",
                                   document_id=document_id, status=DocumentStatus.PROCESSED.value)

        message = "Order created from invoice" if resolved.created else "Invoice attached to order"
        return HandlerResponse(success=True, message=message, document_id=document_id,
                               order_id=resolved.order_id, status=DocumentStatus.ASSIGNED.value)

    async def _fail(self, document_id: str, message: str, error: Optional[str]) -> HandlerResponse:
        reason = error or message
        try:
            await self.documents.mark_error(document_id, reason)
        except Exception as e:
            logger.error(f"Could not mark document {document_id} as error: {e}")
        return HandlerResponse(success=False, message=message, document_id=document_id,
                               status=DocumentStatus.ERROR.value, error=reason)
