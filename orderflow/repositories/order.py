from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from pymongo import DESCENDING
from orderflow.repositories.base import BaseRepository
from orderflow.models.base import utcnow
from orderflow.models.order import Order, OrderStatus

def status_filter(statuses: Iterable[OrderStatus]) -> Dict[str, Any]:
    """Match any stored spelling of the given statuses."""
    spellings: List[str] = []
    for status in statuses:
        spellings.extend(status.spellings())
    return {"$in": spellings}

ACTIVE_STATUSES = [s for s in OrderStatus if not s.is_terminal]

class OrderRepository(BaseRepository[Order]):

    async def get_by_order_id(self, order_id: str, owner_id: Optional[str] = None) -> Optional[Order]:
        return await self.get_by_field("order_id", order_id, owner_id=owner_id)

    async def update_status_if(
        self,
        order_id: str,
        expected: OrderStatus,
        new_status: OrderStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Conditional write: only applies while the stored status is still `expected`
        (or one of its legacy spellings). Returns False when another writer got there first.
        """
        update = dict(fields or {})
        update["status"] = new_status.value
        update["updated_at"] = utcnow()
        result = await self.collection.update_one(
            {"order_id": order_id, "status": status_filter([expected])},
            {"$set": update},
        )
        return result.matched_count > 0

    async def latest_for_counterpart(
        self,
        owner_id: str,
        counterpart_id: str,
        statuses: Iterable[OrderStatus],
        updated_since: Optional[datetime] = None,
    ) -> Optional[Order]:
        filter: Dict[str, Any] = {
            "owner_id": owner_id,
            "counterpart_id": counterpart_id,
            "status": status_filter(statuses),
        }
        if updated_since is not None:
            filter["updated_at"] = {"$gte": updated_since}
        return await self.first(filter, sort=[("created_at", DESCENDING)])

    async def latest_active_for_counterpart(self, owner_id: str, counterpart_id: str) -> Optional[Order]:
        return await self.latest_for_counterpart(owner_id, counterpart_id, ACTIVE_STATUSES)

    async def add_document(self, order_id: str, document_id: str) -> bool:
        result = await self.collection.update_one(
            {"order_id": order_id},
            {"$addToSet": {"document_ids": document_id}},
        )
        return result.matched_count > 0
