import random
import string
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from orderflow.models.base import MongoModel, utcnow

class OrderStatus(str, Enum):
    STANDBY = "standby"
    SENT = "sent"
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    PROOF_SENT = "proof_sent"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.FINALIZED, OrderStatus.CANCELLED)

    def spellings(self) -> List[str]:
        """Every stored spelling that means this status, canonical first."""
        return [self.value] + [legacy for legacy, status in LEGACY_STATUS_ALIASES.items() if status is self]

    @classmethod
    def parse(cls, raw: Any) -> "OrderStatus":
        if isinstance(raw, cls):
            return raw
        text = str(raw).strip()
        try:
            return cls(text)
        except ValueError:
            pass
        if text in LEGACY_STATUS_ALIASES:
            return LEGACY_STATUS_ALIASES[text]
        lowered = text.lower()
        if lowered in LEGACY_STATUS_ALIASES:
            return LEGACY_STATUS_ALIASES[lowered]
        raise ValueError(f"Unknown order status: {raw!r}")

# Spellings written by older versions of the app.
LEGACY_STATUS_ALIASES: Dict[str, OrderStatus] = {
    "pending": OrderStatus.STANDBY,
    "pending_confirmation": OrderStatus.STANDBY,
    "pendiente": OrderStatus.STANDBY,
    "enviado": OrderStatus.SENT,
    "Enviado": OrderStatus.SENT,
    "ENVIADO": OrderStatus.SENT,
    "SENT": OrderStatus.SENT,
    "Sent": OrderStatus.SENT,
    "confirmed": OrderStatus.SENT,
    "esperando_factura": OrderStatus.SENT,
    "pendiente_de_pago": OrderStatus.PENDING_PAYMENT,
    "pago_pendiente": OrderStatus.PENDING_PAYMENT,
    "factura_recibida": OrderStatus.PENDING_PAYMENT,
    "invoice_received": OrderStatus.PENDING_PAYMENT,
    "pagado": OrderStatus.PAID,
    "comprobante_enviado": OrderStatus.PROOF_SENT,
    "finalizado": OrderStatus.FINALIZED,
    "completed": OrderStatus.FINALIZED,
    "cancelado": OrderStatus.CANCELLED,
}

class OrderSource(str, Enum):
    MANUAL = "manual"
    INVOICE = "invoice"

class LineItem(BaseModel):
    """Represents a single line of a purchase order."""
    description: str
    quantity: float = Field(1.0, ge=0)
    unit: str = "un"
    unit_price: float = Field(0.0, ge=0)
    line_total: float = Field(0.0, ge=0)

GENERIC_LINE_DESCRIPTION = "Invoice without itemized lines"

def generate_order_id(now: Optional[datetime] = None) -> str:
    """ORD-YYMMDD-XXXX"""
    now = now or utcnow()
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"ORD-{now.strftime('%y%m%d')}-{suffix}"

class Order(MongoModel):
    """
    Purchase order exchanged with a counterpart over the messaging channel.
    """
    order_id: str = Field(default_factory=generate_order_id)
    owner_id: str
    counterpart_id: str

    status: OrderStatus = OrderStatus.STANDBY
    source: OrderSource = OrderSource.MANUAL

    line_items: List[LineItem] = Field(default_factory=list)
    total_amount: float = 0.0
    currency: str = "ARS"
    notes: str = ""

    # Written only by the invoice-attach action
    invoice_number: Optional[str] = None
    invoice_date: Optional[datetime] = None
    extraction_confidence: Optional[float] = None
    review_flags: List[str] = Field(default_factory=list)
    # Written only by the payment-proof action
    receipt_ref: Optional[str] = None

    document_ids: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_legacy_status(cls, v):
        return OrderStatus.parse(v)

    def calculate_total(self) -> float:
        return round(sum(item.line_total for item in self.line_items), 2)
