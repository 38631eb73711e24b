import re
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Pattern, Tuple

from orderflow.models.base import utcnow
from orderflow.models.invoice import ExtractedInvoiceData, ExtractedLineItem

logger = logging.getLogger(__name__)

# Per-field patterns, most specific first. First match wins.
INVOICE_NUMBER_PATTERNS: List[Pattern] = [
    re.compile(r"\b(\d{4,5}-\d{8})\b"),  # point of sale - sequence, 0001-00001234
    re.compile(r"\b(?:n[º°o]\.?|nro\.?|número|numero|number)\s*[:\-]?\s*(\d{4}-\d{4,8})", re.I),
    re.compile(r"\b(?:factura|invoice|comprobante)\s*(?:n[º°o]\.?|nro\.?|#|número|numero|number)?\s*[:\-]?\s*([A-Z]{0,4}-?\d[\w\-]*)", re.I),
    re.compile(r"\b(?:ref|referencia)\s*[:\-]?\s*([A-Z0-9][A-Z0-9\-]{2,})", re.I),
]

_AMOUNT = r"(?:\$|ARS|USD|U\$S|US\$)?\s*(\d[\d.,]*)"
TOTAL_AMOUNT_PATTERNS: List[Pattern] = [
    re.compile(r"(?:importe\s+total|total\s+a\s+pagar|total\s+general|grand\s+total|amount\s+due)\s*[:\-]?\s*" + _AMOUNT, re.I),
    re.compile(r"(?<!sub)(?<!sub\s)\btotal\b\s*[:\-]?\s*" + _AMOUNT, re.I),
    re.compile(r"\b(?:suma\s+total|importe)\b\s*[:\-]?\s*" + _AMOUNT, re.I),
]

ISSUE_DATE_LABEL = r"\b(?:fecha(?:\s+de\s+emisi[oó]n)?|emisi[oó]n|(?:issue\s+)?date)\b"

ISSUE_DATE_PATTERNS: List[Pattern] = [
    re.compile(ISSUE_DATE_LABEL + r"\s*[:\-]?\s*(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{4})", re.I),
    re.compile(ISSUE_DATE_LABEL + r"\s*[:\-]?\s*(\d{4}-\d{1,2}-\d{1,2})", re.I),
    re.compile(r"\b(\d{1,2}/\d{1,2}/\d{4})\b"),
    re.compile(r"\b(\d{4}-\d{2}-\d{2})\b"),
]

# Dates on a due-date line are never the issue date
DUE_DATE_LABEL = re.compile(r"\b(?:due|vencimiento|vto|vence)\b", re.I)

LABELLED_TAX_ID = re.compile(r"(?:c\.?u\.?i\.?t\.?|c\.?u\.?i\.?l\.?|tax\s*id)\s*(?:n[º°o]\.?)?\s*[:\-]?\s*(\d{2})-?(\d{8})-?(\d)\b", re.I)
UNLABELLED_TAX_ID = re.compile(r"\b(\d{2})-(\d{8})-(\d)\b")
TAX_ID_WEIGHTS = [5, 4, 3, 2, 7, 6, 5, 4, 3, 2]

CURRENCY_CODES = {"ARS", "USD", "EUR", "BRL", "CLP", "UYU", "PYG", "MXN", "GBP"}
CURRENCY_LABEL = re.compile(r"(?:moneda|currency)\s*[:\-]?\s*([A-Z]{3})\b", re.I)
DOLLAR_SIGN = re.compile(r"U\$S|US\$|U\$D")
CURRENCY_CODE = re.compile(r"\b(" + "|".join(sorted(CURRENCY_CODES)) + r")\b")

ITEM_ROW = re.compile(
    r"^\s*(?P<desc>[A-Za-zÁÉÍÓÚÑáéíóúñ].*?)\s+(?P<qty>\d+(?:[.,]\d+)?)\s+\$?\s*(?P<price>\d[\d.,]*)\s+\$?\s*(?P<total>\d[\d.,]*)\s*$"
)
NON_ITEM_KEYWORDS = re.compile(r"\b(?:total|subtotal|iva|importe|fecha|date|cuit|cuil|factura|invoice|nro|vencimiento)\b", re.I)
HEADER_SKIP = re.compile(r"\b(?:factura|invoice|comprobante|fecha|date|cuit|cuil|total|original|duplicado)\b", re.I)

FIELD_WEIGHTS = {
    "total_amount": 0.3,
    "tax_id": 0.2,
    "invoice_number": 0.2,
    "issue_date": 0.1,
    "provider_name": 0.1,
    "currency": 0.1,
}

def parse_amount(raw: Optional[str]) -> float:
    """
    Parses amounts in either locale. With both separators present the
    rightmost one is the decimal point; a lone comma followed by one or two
    digits is a decimal comma, otherwise a thousands separator; repeated dots
    are thousands separators. Returns 0.0 when nothing numeric is left.
    """
    if not raw:
        return 0.0
    s = re.sub(r"[^\d,.\-]", "", raw)
    negative = s.startswith("-")
    s = s.replace("-", "").strip(".,")
    if not s:
        return 0.0

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        parts = s.split(",")
        if len(parts) == 2 and len(parts[1]) <= 2:
            s = s.replace(",", ".")
        else:
            s = s.replace(",", "")
    elif s.count(".") > 1:
        s = s.replace(".", "")

    try:
        value = float(s)
    except ValueError:
        return 0.0
    return -value if negative else value

def is_valid_tax_id(digits: str) -> bool:
    """Mod-11 check digit of an 11-digit CUIT/CUIL."""
    if not re.fullmatch(r"\d{11}", digits):
        return False
    total = sum(int(d) * w for d, w in zip(digits[:10], TAX_ID_WEIGHTS))
    check = 11 - total % 11
    if check == 11:
        check = 0
    if check == 10:
        return False
    return check == int(digits[10])

class InvoiceExtractor:
    """
    Turns noisy OCR text into structured invoice fields using ordered
    regex heuristics. Missing fields are left as None; they only lower
    the confidence score.
    """

    def __init__(self, home_currency: str = "ARS", low_confidence_threshold: float = 0.5,
                 clock: Callable[[], datetime] = utcnow):
        self.home_currency = home_currency
        self.low_confidence_threshold = low_confidence_threshold
        self.now = clock

    def extract(self, text: str) -> ExtractedInvoiceData:
        text = text or ""
        currency, detected = self.extract_currency(text)
        data = ExtractedInvoiceData(
            invoice_number=self.extract_invoice_number(text),
            total_amount=self.extract_total_amount(text),
            currency=currency,
            currency_detected=detected,
            issue_date=self.extract_issue_date(text),
            tax_id=self.extract_tax_id(text),
            provider_name=self.extract_provider_name(text),
            line_items=self.extract_line_items(text),
        )
        data.confidence = self.score(data)
        logger.info(
            f"Extracted invoice {data.invoice_number} total={data.total_amount} {data.currency} "
            f"confidence={data.confidence:.2f}"
        )
        return data

    def score(self, data: ExtractedInvoiceData) -> float:
        present = {
            "total_amount": data.total_amount is not None,
            "tax_id": data.tax_id is not None,
            "invoice_number": data.invoice_number is not None,
            "issue_date": data.issue_date is not None,
            "provider_name": data.provider_name is not None,
            "currency": data.currency_detected,
        }
        earned = sum(weight for field, weight in FIELD_WEIGHTS.items() if present[field])
        return round(min(1.0, earned / sum(FIELD_WEIGHTS.values())), 4)

    def is_low_confidence(self, data: ExtractedInvoiceData) -> bool:
        return data.confidence < self.low_confidence_threshold

    def extract_invoice_number(self, text: str) -> Optional[str]:
        for pattern in INVOICE_NUMBER_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1).strip()
        return None

    def extract_total_amount(self, text: str) -> Optional[float]:
        for pattern in TOTAL_AMOUNT_PATTERNS:
            for match in pattern.finditer(text):
                amount = parse_amount(match.group(1))
                if amount > 0:
                    return amount
        return None

    def extract_currency(self, text: str) -> Tuple[str, bool]:
        match = CURRENCY_LABEL.search(text)
        if match and match.group(1).upper() in CURRENCY_CODES:
            return match.group(1).upper(), True
        if DOLLAR_SIGN.search(text):
            return "USD", True
        match = CURRENCY_CODE.search(text)
        if match:
            return match.group(1), True
        return self.home_currency, False

    def parse_date(self, raw: str) -> Optional[datetime]:
        parts = re.split(r"[/\-.]", raw)
        if len(parts) != 3:
            return None
        try:
            if len(parts[0]) == 4:
                year, month, day = (int(p) for p in parts)
            else:
                day, month, year = (int(p) for p in parts)
            value = datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            return None
        if value > self.now():
            return None
        return value

    def extract_issue_date(self, text: str) -> Optional[datetime]:
        for pattern in ISSUE_DATE_PATTERNS:
            for match in pattern.finditer(text):
                line_start = text.rfind("\n", 0, match.start(1)) + 1
                if DUE_DATE_LABEL.search(text, line_start, match.start(1)):
                    continue
                value = self.parse_date(match.group(1))
                if value is not None:
                    return value
        return None

    def extract_tax_id(self, text: str) -> Optional[str]:
        match = LABELLED_TAX_ID.search(text)
        if match:
            return "-".join(match.groups())
        for match in UNLABELLED_TAX_ID.finditer(text):
            if is_valid_tax_id("".join(match.groups())):
                return "-".join(match.groups())
        return None

    def extract_provider_name(self, text: str) -> Optional[str]:
        for line in text.splitlines()[:10]:
            candidate = line.strip()
            if not 3 < len(candidate) < 60:
                continue
            if candidate[0].isdigit() or re.search(r"\d{4,}", candidate):
                continue
            if "@" in candidate or "www." in candidate.lower():
                continue
            if HEADER_SKIP.search(candidate):
                continue
            return candidate
        return None

    def extract_line_items(self, text: str) -> List[ExtractedLineItem]:
        items = []
        for line in text.splitlines():
            if NON_ITEM_KEYWORDS.search(line):
                continue
            match = ITEM_ROW.match(line)
            if not match:
                continue
            line_total = parse_amount(match.group("total"))
            if line_total <= 0:
                continue
            items.append(ExtractedLineItem(
                description=match.group("desc").strip(),
                quantity=float(match.group("qty").replace(",", ".")),
                unit_price=parse_amount(match.group("price")),
                line_total=line_total,
            ))
        return items
