from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple
from orderflow.models.order import OrderStatus

class Trigger(str, Enum):
    COUNTERPART_MESSAGE = "counterpart_message"
    INVOICE_RECEIVED = "invoice_received"
    PAYMENT_PROOF_UPLOADED = "payment_proof_uploaded"
    PROOF_FORWARDED = "proof_forwarded"
    ORDER_FINALIZED = "order_finalized"
    ORDER_CANCELLED = "order_cancelled"

class Action(str, Enum):
    SEND_ORDER_DETAILS = "send_order_details"
    ATTACH_INVOICE = "attach_invoice"
    ATTACH_RECEIPT = "attach_receipt"
    SEND_PROOF_FORWARDED = "send_proof_forwarded"
    SEND_COMPLETION = "send_completion"
    CANCEL_ORDER = "cancel_order"

class Transition(NamedTuple):
    from_status: OrderStatus
    trigger: Trigger
    to_status: OrderStatus
    action: Action

# The only edges an order can move along. A counterpart message while the
# order waits for payment has no edge: payment is confirmed by the owner.
TRANSITIONS: Dict[Tuple[OrderStatus, Trigger], Transition] = {
    (t.from_status, t.trigger): t for t in [
        Transition(OrderStatus.STANDBY, Trigger.COUNTERPART_MESSAGE, OrderStatus.SENT, Action.SEND_ORDER_DETAILS),
        Transition(OrderStatus.SENT, Trigger.INVOICE_RECEIVED, OrderStatus.PENDING_PAYMENT, Action.ATTACH_INVOICE),
        Transition(OrderStatus.PENDING_PAYMENT, Trigger.PAYMENT_PROOF_UPLOADED, OrderStatus.PAID, Action.ATTACH_RECEIPT),
        Transition(OrderStatus.PAID, Trigger.PROOF_FORWARDED, OrderStatus.PROOF_SENT, Action.SEND_PROOF_FORWARDED),
        Transition(OrderStatus.PROOF_SENT, Trigger.ORDER_FINALIZED, OrderStatus.FINALIZED, Action.SEND_COMPLETION),
        Transition(OrderStatus.STANDBY, Trigger.ORDER_CANCELLED, OrderStatus.CANCELLED, Action.CANCEL_ORDER),
        Transition(OrderStatus.SENT, Trigger.ORDER_CANCELLED, OrderStatus.CANCELLED, Action.CANCEL_ORDER),
    ]
}

def next_transition(status: OrderStatus, trigger: Trigger) -> Optional[Transition]:
    """Pure lookup. None means the event does not apply to an order in this status."""
    return TRANSITIONS.get((OrderStatus.parse(status), trigger))

def available_triggers(status: OrderStatus) -> List[Trigger]:
    status = OrderStatus.parse(status)
    return [trigger for (from_status, trigger) in TRANSITIONS if from_status is status]
