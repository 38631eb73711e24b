import asyncio
import logging
from typing import Optional

from orderflow.models.counterpart import Counterpart
from orderflow.repositories.counterpart import CounterpartRepository
from orderflow.tools.phone import PhoneNormalizer

logger = logging.getLogger(__name__)

SUFFIX_DIGITS = 8

class CounterpartLookup:
    """
    Finds the counterpart behind an inbound phone number. Exact, variant and
    suffix searches run concurrently; the most specific hit wins.
    """

    def __init__(self, counterparts: CounterpartRepository, phones: PhoneNormalizer):
        self.counterparts = counterparts
        self.phones = phones

    async def _exact(self, owner_id: str, canonical: Optional[str]):
        if not canonical:
            return None
        return await self.counterparts.find_by_phone(owner_id, canonical)

    async def _variants(self, owner_id: str, raw: str):
        found = await self.counterparts.find_by_phones(owner_id, self.phones.search_variants(raw))
        return found[0] if found else None

    async def _suffix(self, owner_id: str, raw: str):
        digits = "".join(ch for ch in raw if ch.isdigit())
        if len(digits) < SUFFIX_DIGITS:
            return None
        found = await self.counterparts.find_by_phone_suffix(owner_id, digits[-SUFFIX_DIGITS:])
        if len(found) > 1:
            logger.warning(f"{len(found)} counterparts share the suffix of {raw}, using the first")
        return found[0] if found else None

    async def find_by_phone(self, owner_id: str, raw_phone: str) -> Optional[Counterpart]:
        canonical = self.phones.canonical(raw_phone)
        results = await asyncio.gather(
            self._exact(owner_id, canonical),
            self._variants(owner_id, raw_phone),
            self._suffix(owner_id, raw_phone),
            return_exceptions=True,
        )
        for strategy, result in zip(("exact", "variants", "suffix"), results):
            if isinstance(result, Exception):
                logger.warning(f"Counterpart lookup ({strategy}) failed for {raw_phone}: {result}")
                continue
            if result is not None:
                logger.info(f"Counterpart {result.counterpart_id} matched {raw_phone} by {strategy}")
                return result
        logger.info(f"No counterpart for {raw_phone} (owner {owner_id})")
        return None
