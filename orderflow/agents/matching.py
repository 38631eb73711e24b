import asyncio
import logging
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from orderflow.models.base import utcnow
from orderflow.models.counterpart import Counterpart
from orderflow.models.document import Document
from orderflow.models.invoice import ExtractedInvoiceData
from orderflow.models.order import GENERIC_LINE_DESCRIPTION, LineItem, Order, OrderSource, OrderStatus
from orderflow.models.results import ResolveResult, TransitionOutcome
from orderflow.repositories.document import DocumentRepository
from orderflow.repositories.order import OrderRepository
from orderflow.workflow.executor import TransitionExecutor
from orderflow.workflow.state_machine import Trigger
from orderflow.agents.invoice_validation import InvoiceValidator

logger = logging.getLogger(__name__)

class OrderMatcher:
    """
    Attaches an extracted invoice to the counterpart's open order, or creates
    a new order awaiting payment when there is none.

    Resolutions for the same (owner, counterpart) are serialised in-process.
    Two processes can still race between the re-check and the insert.
    """

    def __init__(
        self,
        orders: OrderRepository,
        documents: DocumentRepository,
        executor: TransitionExecutor,
        recheck_window_seconds: float = 120.0,
        validator: Optional[InvoiceValidator] = None,
        clock=utcnow,
    ):
        self.orders = orders
        self.documents = documents
        self.executor = executor
        self.validator = validator or InvoiceValidator()
        self.recheck_window = timedelta(seconds=recheck_window_seconds)
        self.now = clock
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def _lock_for(self, owner_id: str, counterpart_id: str) -> asyncio.Lock:
        return self._locks.setdefault((owner_id, counterpart_id), asyncio.Lock())

    async def resolve(self, counterpart: Counterpart, extracted: ExtractedInvoiceData, document: Document) -> ResolveResult:
        if not counterpart.auto_flow_enabled:
            logger.info(f"Automatic flow disabled for counterpart {counterpart.counterpart_id}, leaving document {document.document_id} unassigned")
            return ResolveResult(skipped=True)

        async with self._lock_for(counterpart.owner_id, counterpart.counterpart_id):
            try:
                return await self._resolve(counterpart, extracted, document)
            except Exception as e:
                logger.error(f"Matching failed for document {document.document_id}: {e}")
                return ResolveResult(error=str(e))

    async def _resolve(self, counterpart: Counterpart, extracted: ExtractedInvoiceData, document: Document) -> ResolveResult:
        owner_id, counterpart_id = counterpart.owner_id, counterpart.counterpart_id

        sent = await self.orders.latest_for_counterpart(owner_id, counterpart_id, [OrderStatus.SENT])
        if sent:
            return await self._attach(sent, counterpart, extracted, document)

        # Re-check right before inserting: a racing resolution of the same
        # invoice may already have created or advanced an order, and a
        # concurrent counterpart message may have moved a standby order to sent.
        sent = await self.orders.latest_for_counterpart(owner_id, counterpart_id, [OrderStatus.SENT])
        if sent:
            logger.info(f"Order {sent.order_id} was sent while document {document.document_id} was matched")
            return await self._attach(sent, counterpart, extracted, document)
        recent = await self.orders.latest_for_counterpart(
            owner_id, counterpart_id, [OrderStatus.PENDING_PAYMENT],
            updated_since=self.now() - self.recheck_window,
        )
        if recent:
            logger.info(f"Document {document.document_id} merged into recently updated order {recent.order_id}")
            await self._flag(document, self.validator.check(extracted, counterpart, recent))
            await self._link(recent.order_id, document)
            return ResolveResult(order_id=recent.order_id)

        order = self._order_from_invoice(counterpart, extracted, document)
        order.review_flags = self.validator.check(extracted, counterpart)
        order = await self.executor.create(order)
        await self._flag(document, order.review_flags)
        await self._link(order.order_id, document)
        return ResolveResult(order_id=order.order_id, created=True)

    async def _attach(self, order: Order, counterpart: Counterpart, extracted: ExtractedInvoiceData,
                      document: Document) -> ResolveResult:
        flags = self.validator.check(extracted, counterpart, order)
        result = await self.executor.execute(
            order, Trigger.INVOICE_RECEIVED,
            {"invoice": extracted, "document_id": document.document_id, "review_flags": flags},
        )
        if not result.success:
            return ResolveResult(order_id=order.order_id, error=result.error)
        if result.outcome == TransitionOutcome.CONFLICT:
            logger.info(f"Order {order.order_id} advanced concurrently; linking document {document.document_id} anyway")
        await self._flag(document, flags)
        await self._link(order.order_id, document)
        return ResolveResult(order_id=order.order_id)

    async def _flag(self, document: Document, flags: List[str]):
        if not flags:
            return
        logger.warning(f"Document {document.document_id} needs review: {'; '.join(flags)}")
        await self.documents.set_review_flags(document.document_id, flags)

    async def _link(self, order_id: str, document: Document):
        if not await self.documents.link_order(document.document_id, order_id):
            logger.info(f"Document {document.document_id} was already linked to an order")
        await self.orders.add_document(order_id, document.document_id)

    @staticmethod
    def _order_from_invoice(counterpart: Counterpart, extracted: ExtractedInvoiceData, document: Document) -> Order:
        if extracted.is_itemized:
            items = [
                LineItem(description=i.description, quantity=i.quantity, unit_price=i.unit_price, line_total=i.line_total)
                for i in extracted.line_items
            ]
        else:
            amount = extracted.total_amount or 0.0
            items = [LineItem(description=GENERIC_LINE_DESCRIPTION, quantity=1, unit_price=amount, line_total=amount)]

        order = Order(
            owner_id=counterpart.owner_id,
            counterpart_id=counterpart.counterpart_id,
            status=OrderStatus.PENDING_PAYMENT,
            source=OrderSource.INVOICE,
            line_items=items,
            currency=extracted.currency,
            invoice_number=extracted.invoice_number,
            invoice_date=extracted.issue_date,
            extraction_confidence=extracted.confidence,
        )
        order.total_amount = extracted.total_amount if extracted.total_amount is not None else order.calculate_total()
        return order
