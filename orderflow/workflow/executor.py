import logging
from typing import Any, Dict, Optional

from orderflow.errors import ValidationError
from orderflow.models.base import utcnow
from orderflow.models.invoice import ExtractedInvoiceData
from orderflow.models.order import Order
from orderflow.models.results import TransitionOutcome, TransitionResult
from orderflow.repositories.counterpart import CounterpartRepository
from orderflow.repositories.order import OrderRepository
from orderflow.tools.fanout import NotificationFanout
from orderflow.tools.messaging import MessagingGateway
from orderflow.workflow import messages
from orderflow.workflow.dedup import DedupCache
from orderflow.workflow.state_machine import Action, Trigger, next_transition

logger = logging.getLogger(__name__)

class ActionHandler:
    """
    One per Action. `fields` returns what the guarded write persists alongside
    the new status; `perform` runs the side effect once the write has landed.
    """

    def fields(self, order: Order, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    async def perform(self, executor: "TransitionExecutor", order: Order, payload: Dict[str, Any]):
        return None

class SendOrderDetails(ActionHandler):
    async def perform(self, executor, order, payload):
        counterpart = await executor.counterpart_for(order)
        today = executor.now().strftime("%d/%m/%Y")
        await executor.gateway.send_text(
            counterpart.canonical_phone, messages.order_details(order, counterpart, today)
        )

class AttachInvoice(ActionHandler):
    def fields(self, order, payload):
        invoice = payload.get("invoice")
        if not isinstance(invoice, ExtractedInvoiceData):
            raise ValidationError("ATTACH_INVOICE requires extracted invoice data")
        fields: Dict[str, Any] = {
            "invoice_number": invoice.invoice_number,
            "invoice_date": invoice.issue_date,
            "extraction_confidence": invoice.confidence,
            "review_flags": list(payload.get("review_flags") or []),
        }
        if invoice.total_amount is not None:
            fields["total_amount"] = invoice.total_amount
        if invoice.currency_detected:
            fields["currency"] = invoice.currency
        return fields

    async def perform(self, executor, order, payload):
        counterpart = await executor.counterpart_for(order)
        await executor.gateway.send_text(counterpart.canonical_phone, messages.invoice_received(order))

class AttachReceipt(ActionHandler):
    def fields(self, order, payload):
        receipt_ref = payload.get("receipt_ref")
        if not receipt_ref:
            raise ValidationError("ATTACH_RECEIPT requires a receipt reference")
        return {"receipt_ref": receipt_ref}

class SendProofForwarded(ActionHandler):
    async def perform(self, executor, order, payload):
        counterpart = await executor.counterpart_for(order)
        receipt_url = payload.get("receipt_url")
        await executor.gateway.send_text(
            counterpart.canonical_phone, messages.proof_forwarded(order, receipt_url)
        )

class SendCompletion(ActionHandler):
    async def perform(self, executor, order, payload):
        counterpart = await executor.counterpart_for(order)
        await executor.gateway.send_text(counterpart.canonical_phone, messages.order_completed(order))

class CancelOrder(ActionHandler):
    def fields(self, order, payload):
        reason = payload.get("reason")
        if not reason:
            return {}
        notes = f"{order.notes}\n" if order.notes else ""
        return {"notes": f"{notes}Cancelled: {reason}"}

ACTION_HANDLERS: Dict[Action, ActionHandler] = {
    Action.SEND_ORDER_DETAILS: SendOrderDetails(),
    Action.ATTACH_INVOICE: AttachInvoice(),
    Action.ATTACH_RECEIPT: AttachReceipt(),
    Action.SEND_PROOF_FORWARDED: SendProofForwarded(),
    Action.SEND_COMPLETION: SendCompletion(),
    Action.CANCEL_ORDER: CancelOrder(),
}

_missing = set(Action) - set(ACTION_HANDLERS)
if _missing:
    raise RuntimeError(f"Actions without a handler: {sorted(a.value for a in _missing)}")

class TransitionExecutor:
    """
    The only code path that changes an order's status, and the only publisher
    of order fan-out events.
    """

    def __init__(
        self,
        orders: OrderRepository,
        counterparts: CounterpartRepository,
        gateway: MessagingGateway,
        fanout: NotificationFanout,
        dedup: DedupCache,
        clock=utcnow,
    ):
        self.orders = orders
        self.counterparts = counterparts
        self.gateway = gateway
        self.fanout = fanout
        self.dedup = dedup
        self.now = clock

    async def counterpart_for(self, order: Order):
        counterpart = await self.counterparts.get_by_counterpart_id(order.counterpart_id, owner_id=order.owner_id)
        if not counterpart:
            raise ValidationError(f"Counterpart {order.counterpart_id} not found for order {order.order_id}")
        return counterpart

    async def execute(self, order: Order, trigger: Trigger, payload: Optional[Dict[str, Any]] = None) -> TransitionResult:
        payload = payload or {}
        transition = next_transition(order.status, trigger)
        if transition is None:
            logger.info(f"Order {order.order_id}: no transition from {order.status.value} on {trigger.value}")
            return TransitionResult(
                outcome=TransitionOutcome.DECLINED,
                order_id=order.order_id,
                new_status=order.status.value,
                error=f"{trigger.value} does not apply to an order in {order.status.value}",
            )

        action = transition.action
        key = (action, order.order_id, order.counterpart_id)
        if self.dedup.seen(key):
            logger.info(f"Order {order.order_id}: {action.value} already executed recently, skipping")
            return TransitionResult(
                outcome=TransitionOutcome.DUPLICATE,
                order_id=order.order_id,
                new_status=transition.to_status.value,
            )

        handler = ACTION_HANDLERS[action]
        try:
            fields = handler.fields(order, payload)
            applied = await self.orders.update_status_if(
                order.order_id, transition.from_status, transition.to_status, fields
            )
        except Exception as e:
            logger.error(f"Order {order.order_id}: {action.value} write failed: {e}")
            return TransitionResult(outcome=TransitionOutcome.FAILED, order_id=order.order_id, error=str(e))

        if not applied:
            logger.info(f"Order {order.order_id}: status changed concurrently, {action.value} not applied")
            return TransitionResult(
                outcome=TransitionOutcome.CONFLICT,
                order_id=order.order_id,
                error="Order status changed concurrently",
            )

        updated = order.model_copy(update={**fields, "status": transition.to_status, "updated_at": self.now()})
        logger.info(f"Order {order.order_id}: {transition.from_status.value} -> {transition.to_status.value} ({action.value})")

        action_error = None
        try:
            await handler.perform(self, updated, payload)
        except Exception as e:
            action_error = str(e)
            logger.warning(f"Order {order.order_id}: {action.value} side effect failed: {e}")
        self.dedup.record(key)

        self.fanout.publish(order.order_id, transition.to_status.value, f"executor:{action.value}")
        return TransitionResult(
            outcome=TransitionOutcome.APPLIED,
            order_id=order.order_id,
            new_status=transition.to_status.value,
            action_error=action_error,
        )

    async def create(self, order: Order) -> Order:
        """Inserts an order that starts outside `standby` (invoice-driven) and announces it."""
        order = await self.orders.create(order)
        logger.info(f"Order {order.order_id} created in {order.status.value} ({order.source.value})")
        self.fanout.publish(order.order_id, order.status.value, "executor:create")
        return order
