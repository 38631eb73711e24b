from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

class ExtractedLineItem(BaseModel):
    description: str
    quantity: float = 1.0
    unit_price: float = 0.0
    line_total: float = 0.0

class ExtractedInvoiceData(BaseModel):
    """
    Output of the invoice extraction engine. Transient: folded into the
    Order and the Document that carried it.
    """
    invoice_number: Optional[str] = None
    total_amount: Optional[float] = None
    currency: str = "ARS"
    currency_detected: bool = False
    issue_date: Optional[datetime] = None
    tax_id: Optional[str] = None
    provider_name: Optional[str] = None
    line_items: List[ExtractedLineItem] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    @property
    def is_itemized(self) -> bool:
        return len(self.line_items) > 0
