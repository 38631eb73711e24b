import logging
from typing import Optional

from orderflow.errors import NotFoundError, ValidationError
from orderflow.models.document import Document, DocumentSource, DocumentStatus
from orderflow.models.events import DocumentSourceDescriptor, EventKind, InboundEvent
from orderflow.models.order import Order
from orderflow.models.results import HandlerResponse, TransitionResult
from orderflow.repositories.document import DocumentRepository
from orderflow.repositories.order import ACTIVE_STATUSES, OrderRepository
from orderflow.agents.counterpart_lookup import CounterpartLookup
from orderflow.agents.document_processor import DocumentProcessor
from orderflow.tools.phone import PhoneNormalizer
from orderflow.tools.storage import GridFSStorage
from orderflow.workflow.executor import TransitionExecutor
from orderflow.workflow.state_machine import Trigger, available_triggers, next_transition

logger = logging.getLogger(__name__)

MESSAGE_ADVANCES = [s for s in ACTIVE_STATUSES if Trigger.COUNTERPART_MESSAGE in available_triggers(s)]

def rejection(error: ValidationError) -> str:
    return "not_found" if isinstance(error, NotFoundError) else "rejected"

class InboundEventHandler:
    """Entry point for events pushed by the messaging gateway."""

    def __init__(self, lookup: CounterpartLookup, orders: OrderRepository, executor: TransitionExecutor,
                 processor: DocumentProcessor, phones: PhoneNormalizer):
        self.lookup = lookup
        self.orders = orders
        self.executor = executor
        self.processor = processor
        self.phones = phones

    async def handle(self, owner_id: str, event: InboundEvent) -> HandlerResponse:
        try:
            if self.phones.normalize(event.sender_phone) is None:
                raise ValidationError(f"Malformed phone number: {event.sender_phone!r}")
            counterpart = await self.lookup.find_by_phone(owner_id, event.sender_phone)
            if counterpart is None:
                raise NotFoundError(f"No counterpart registered for {self.phones.to_readable(event.sender_phone)}")

            if event.kind == EventKind.DOCUMENT:
                if counterpart.auto_flow_enabled:
                    # A document is also a message from the counterpart
                    await self._advance_standby(owner_id, counterpart.counterpart_id)
                source = DocumentSourceDescriptor(
                    url=event.document.url,
                    filename=event.document.filename,
                    mime_type=event.document.mime_type,
                )
                return await self.processor.process(owner_id, source, counterpart, DocumentSource.MESSAGING)

            if not counterpart.auto_flow_enabled:
                return HandlerResponse(success=True, message="Automatic flow disabled for this counterpart")
            return await self._on_text(owner_id, counterpart.counterpart_id)
        except ValidationError as e:
            logger.info(f"Rejected inbound event from {event.sender_phone}: {e}")
            return HandlerResponse(success=False, message="Event rejected", outcome=rejection(e), error=str(e))
        except Exception as e:
            logger.error(f"Inbound event from {event.sender_phone} failed: {e}")
            return HandlerResponse(success=False, message="Event processing failed", error=str(e))

    async def _advance_standby(self, owner_id: str, counterpart_id: str) -> Optional[TransitionResult]:
        order = await self.orders.latest_for_counterpart(owner_id, counterpart_id, MESSAGE_ADVANCES)
        if order is None:
            return None
        result = await self.executor.execute(order, Trigger.COUNTERPART_MESSAGE)
        logger.info(f"Message from counterpart {counterpart_id} on order {order.order_id}: {result.outcome.value}")
        return result

    async def _on_text(self, owner_id: str, counterpart_id: str) -> HandlerResponse:
        result = await self._advance_standby(owner_id, counterpart_id)
        if result is not None:
            return HandlerResponse.from_transition(result)
        # Nothing to advance: report against the latest open order, which is left untouched
        order = await self.orders.latest_active_for_counterpart(owner_id, counterpart_id)
        if order is None:
            return HandlerResponse(success=True, message="No open order for this counterpart")
        result = await self.executor.execute(order, Trigger.COUNTERPART_MESSAGE)
        return HandlerResponse.from_transition(result)

class OrderCommands:
    """Owner-initiated steps of the order lifecycle."""

    def __init__(self, orders: OrderRepository, documents: DocumentRepository,
                 storage: GridFSStorage, executor: TransitionExecutor):
        self.orders = orders
        self.documents = documents
        self.storage = storage
        self.executor = executor

    async def get_order(self, owner_id: str, order_id: str) -> Order:
        order = await self.orders.get_by_order_id(order_id, owner_id=owner_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def _run(self, owner_id: str, order_id: str, trigger: Trigger, payload=None) -> HandlerResponse:
        try:
            order = await self.get_order(owner_id, order_id)
            if callable(payload):
                payload = payload(order)
            result = await self.executor.execute(order, trigger, payload)
            return HandlerResponse.from_transition(result)
        except ValidationError as e:
            return HandlerResponse(success=False, message="Command rejected", order_id=order_id,
                                   outcome=rejection(e), error=str(e))
        except Exception as e:
            logger.error(f"{trigger.value} on order {order_id} failed: {e}")
            return HandlerResponse(success=False, message="Command failed", order_id=order_id, error=str(e))

    async def upload_payment_proof(self, owner_id: str, order_id: str, filename: str,
                                   content: bytes, mime_type: str) -> HandlerResponse:
        try:
            order = await self.get_order(owner_id, order_id)
            if next_transition(order.status, Trigger.PAYMENT_PROOF_UPLOADED) is None:
                return HandlerResponse(
                    success=False, message="Order is not awaiting payment", order_id=order_id,
                    status=order.status.value, outcome="declined",
                    error=f"Payment proof not accepted while order is {order.status.value}",
                )
            if not content:
                raise ValidationError("Empty payment proof")

            receipt_ref = await self.storage.put(
                filename, content, mime_type, metadata={"owner_id": owner_id, "order_id": order_id}
            )
            document = await self.documents.create(Document(
                owner_id=owner_id,
                counterpart_id=order.counterpart_id,
                order_id=order_id,
                storage_ref=receipt_ref,
                filename=filename,
                mime_type=mime_type,
                source=DocumentSource.PAYMENT_PROOF,
                status=DocumentStatus.ASSIGNED,
            ))
            await self.orders.add_document(order_id, document.document_id)

            result = await self.executor.execute(order, Trigger.PAYMENT_PROOF_UPLOADED, {"receipt_ref": receipt_ref})
            response = HandlerResponse.from_transition(result)
            response.document_id = document.document_id
            return response
        except ValidationError as e:
            return HandlerResponse(success=False, message="Command rejected", order_id=order_id,
                                   outcome=rejection(e), error=str(e))
        except Exception as e:
            logger.error(f"Payment proof upload for order {order_id} failed: {e}")
            return HandlerResponse(success=False, message="Command failed", order_id=order_id, error=str(e))

    async def mark_proof_forwarded(self, owner_id: str, order_id: str) -> HandlerResponse:
        def payload(order: Order) -> dict:
            return {"receipt_url": self.storage.url_for(order.receipt_ref) if order.receipt_ref else None}
        return await self._run(owner_id, order_id, Trigger.PROOF_FORWARDED, payload)

    async def finalize(self, owner_id: str, order_id: str) -> HandlerResponse:
        return await self._run(owner_id, order_id, Trigger.ORDER_FINALIZED)

    async def cancel(self, owner_id: str, order_id: str, reason: Optional[str] = None) -> HandlerResponse:
        return await self._run(owner_id, order_id, Trigger.ORDER_CANCELLED, {"reason": reason})
