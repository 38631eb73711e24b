import logging
import re
from typing import List, Optional

from orderflow.models.counterpart import Counterpart
from orderflow.models.invoice import ExtractedInvoiceData
from orderflow.models.order import Order

logger = logging.getLogger(__name__)

def digits_only(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")

class InvoiceValidator:
    """
    Compares an extracted invoice with what is already known about the order
    and the counterpart. Discrepancies never block the flow; they come back
    as review flags for the owner.
    """

    def __init__(self, home_currency: str = "ARS", moderate_pct: float = 5.0, major_pct: float = 10.0):
        self.home_currency = home_currency
        self.moderate_pct = moderate_pct
        self.major_pct = major_pct

    def check(self, extracted: ExtractedInvoiceData, counterpart: Counterpart,
              order: Optional[Order] = None) -> List[str]:
        flags = []

        amount_flag = self.check_amount(extracted, order)
        if amount_flag:
            flags.append(amount_flag)

        invoice_tax_id = digits_only(extracted.tax_id)
        known_tax_id = digits_only(counterpart.tax_id)
        if invoice_tax_id and known_tax_id and invoice_tax_id != known_tax_id:
            flags.append(f"Invoice CUIT {extracted.tax_id} does not match counterpart CUIT {counterpart.tax_id}")

        expected_currency = order.currency if order else self.home_currency
        if extracted.currency_detected and extracted.currency != expected_currency:
            flags.append(f"Invoice currency {extracted.currency} differs from {expected_currency}")

        return flags

    def check_amount(self, extracted: ExtractedInvoiceData, order: Optional[Order]) -> Optional[str]:
        # Nothing to compare against
        if order is None or not order.total_amount or extracted.total_amount is None:
            return None

        difference = abs(extracted.total_amount - order.total_amount)
        pct = difference / order.total_amount * 100
        if pct > self.major_pct:
            severity = "major"
        elif pct > self.moderate_pct:
            severity = "moderate"
        else:
            return None
        return (f"Invoice total {extracted.total_amount:.2f} differs from order total "
                f"{order.total_amount:.2f} by {pct:.1f}% ({severity})")
