from typing import Generic, TypeVar, Any, Dict, List, Optional, Tuple
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError
from orderflow.errors import DataConflictError
from orderflow.models.base import MongoModel, utcnow

T = TypeVar("T", bound=MongoModel)

class BaseRepository(Generic[T]):
    def __init__(self, collection: AsyncIOMotorCollection, model_cls: type[T]):
        self.collection = collection
        self.model_cls = model_cls

    async def get_by_field(self, field: str, value: Any, owner_id: Optional[str] = None) -> Optional[T]:
        """Get a document by a specific field, optionally scoped to an owner."""
        filter = {field: value}
        if owner_id is not None:
            filter["owner_id"] = owner_id
        doc = await self.collection.find_one(filter)
        return self.model_cls.from_mongo(doc) if doc else None

    async def list(
        self,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[T]:
        """List documents with optional filter, sort and pagination."""
        cursor = self.collection.find(filter or {})
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [self.model_cls.from_mongo(doc) for doc in docs]

    async def first(self, filter: Dict[str, Any], sort: List[Tuple[str, int]]) -> Optional[T]:
        found = await self.list(filter, sort=sort, limit=1)
        return found[0] if found else None

    async def create(self, model: T) -> T:
        """Create a new document. Raises DataConflictError on a duplicate key."""
        data = model.to_mongo()
        try:
            result = await self.collection.insert_one(data)
        except DuplicateKeyError as e:
            raise DataConflictError(f"{self.model_cls.__name__} already exists: {e}") from e
        model.id = str(result.inserted_id)
        return model

    async def update_by_field(self, field: str, value: Any, update_data: Dict[str, Any]) -> bool:
        """Partial update with $set; updated_at is always refreshed."""
        update_data = {**update_data, "updated_at": utcnow()}
        result = await self.collection.update_one({field: value}, {"$set": update_data})
        return result.matched_count > 0

    async def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching a filter."""
        return await self.collection.count_documents(filter or {})
