import re
from typing import List, Optional
from orderflow.repositories.base import BaseRepository
from orderflow.models.base import utcnow
from orderflow.models.counterpart import Counterpart

class CounterpartRepository(BaseRepository[Counterpart]):

    async def get_by_counterpart_id(self, counterpart_id: str, owner_id: Optional[str] = None) -> Optional[Counterpart]:
        return await self.get_by_field("counterpart_id", counterpart_id, owner_id=owner_id)

    async def find_by_phone(self, owner_id: str, canonical_phone: str) -> Optional[Counterpart]:
        return await self.get_by_field("canonical_phone", canonical_phone, owner_id=owner_id)

    async def find_by_phones(self, owner_id: str, phones: List[str]) -> List[Counterpart]:
        if not phones:
            return []
        return await self.list({"owner_id": owner_id, "canonical_phone": {"$in": phones}}, limit=10)

    async def find_by_phone_suffix(self, owner_id: str, suffix: str) -> List[Counterpart]:
        pattern = f"{re.escape(suffix)}$"
        return await self.list({"owner_id": owner_id, "canonical_phone": {"$regex": pattern}}, limit=10)

    async def upsert(self, counterpart: Counterpart) -> Counterpart:
        counterpart.updated_at = utcnow()
        await self.collection.replace_one(
            {"counterpart_id": counterpart.counterpart_id},
            counterpart.to_mongo(),
            upsert=True,
        )
        return counterpart
