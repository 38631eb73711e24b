import re
import logging
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)

NATIONAL_LENGTH = 10
MAX_VARIANTS = 8

class PhoneNumber(NamedTuple):
    canonical: str
    country_code: str
    national_number: str

class PhoneNormalizer:
    """
    Reduces the many spellings of a counterpart's phone number to one canonical
    form, +<country code><10-digit national number>.

    Mobile numbers arrive with a `9` between the country code and the area code
    (e.g. +54 9 11 3556 2673); it is dropped so both spellings collapse to
    +541135562673.
    """

    def __init__(self, country_code: str = "54"):
        self.country_code = country_code

    @staticmethod
    def _clean(raw: str) -> str:
        return re.sub(r"[^\d+]", "", raw or "")

    def normalize(self, raw: Optional[str]) -> Optional[PhoneNumber]:
        """Returns None when the input cannot be reduced to a 10-digit national number."""
        if not raw or not isinstance(raw, str):
            return None
        digits = re.sub(r"\D", "", raw)
        if not digits:
            return None

        cc = self.country_code
        if len(digits) > NATIONAL_LENGTH and digits.startswith(cc):
            digits = digits[len(cc):]
        if len(digits) == NATIONAL_LENGTH + 1 and digits.startswith("9"):
            digits = digits[1:]
        if len(digits) != NATIONAL_LENGTH:
            return None

        return PhoneNumber(canonical=f"+{cc}{digits}", country_code=cc, national_number=digits)

    def canonical(self, raw: Optional[str]) -> Optional[str]:
        phone = self.normalize(raw)
        return phone.canonical if phone else None

    def search_variants(self, raw: Optional[str]) -> List[str]:
        """
        Every spelling under which a number may have been stored by older
        records. Lookups only; never persisted.
        """
        if not raw:
            return []
        cleaned = self._clean(raw)
        bare = cleaned.lstrip("+")
        candidates = [raw.strip(), cleaned, f"+{bare}", bare]

        phone = self.normalize(raw)
        if phone:
            cc, national = phone.country_code, phone.national_number
            candidates += [
                phone.canonical,
                f"{cc}{national}",
                national,
                f"+{cc}9{national}",
                f"{cc}9{national}",
            ]

        variants: List[str] = []
        for candidate in candidates:
            if candidate and candidate != "+" and candidate not in variants:
                variants.append(candidate)
        return variants[:MAX_VARIANTS]

    def equivalent(self, a: Optional[str], b: Optional[str]) -> bool:
        first, second = self.normalize(a), self.normalize(b)
        if first and second:
            return first.canonical == second.canonical
        return bool(set(self.search_variants(a)) & set(self.search_variants(b)))

    def to_readable(self, raw: Optional[str]) -> str:
        """Display form, e.g. +54 11 3556-2673. Unparseable input is returned as given."""
        phone = self.normalize(raw)
        if not phone:
            return raw or ""
        national = phone.national_number
        # Buenos Aires uses a 2-digit area code; assume 3 digits elsewhere
        area_len = 2 if national.startswith("11") else 3
        area, local = national[:area_len], national[area_len:]
        return f"+{phone.country_code} {area} {local[:-4]}-{local[-4:]}"
