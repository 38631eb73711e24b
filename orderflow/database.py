from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket
from pymongo import ASCENDING, DESCENDING, IndexModel

from orderflow.models.counterpart import Counterpart
from orderflow.models.document import Document
from orderflow.models.order import Order
from orderflow.repositories.counterpart import CounterpartRepository
from orderflow.repositories.document import DocumentRepository
from orderflow.repositories.order import OrderRepository

INDEXES = {
    "orders": [
        IndexModel([("order_id", ASCENDING)], unique=True),
        IndexModel([("owner_id", ASCENDING), ("counterpart_id", ASCENDING),
                    ("status", ASCENDING), ("created_at", DESCENDING)]),
    ],
    "counterparts": [
        IndexModel([("counterpart_id", ASCENDING)], unique=True),
        IndexModel([("owner_id", ASCENDING), ("canonical_phone", ASCENDING)], unique=True),
    ],
    "documents": [
        IndexModel([("document_id", ASCENDING)], unique=True),
        IndexModel([("owner_id", ASCENDING), ("status", ASCENDING)]),
        IndexModel([("order_id", ASCENDING)]),
    ],
}

class Database:
    """Motor client, GridFS bucket and the repositories over one database."""

    def __init__(self, client: AsyncIOMotorClient, db_name: str, bucket_name: str = "documents"):
        self.client = client
        self.db: AsyncIOMotorDatabase = client[db_name]
        self.fs = AsyncIOMotorGridFSBucket(self.db, bucket_name=bucket_name)

        self.orders = OrderRepository(self.db.orders, Order)
        self.counterparts = CounterpartRepository(self.db.counterparts, Counterpart)
        self.documents = DocumentRepository(self.db.documents, Document)

    @classmethod
    def connect(cls, url: str, db_name: str, bucket_name: str = "documents") -> "Database":
        return cls(AsyncIOMotorClient(url, tz_aware=True), db_name, bucket_name)

    async def create_indexes(self):
        for collection, indexes in INDEXES.items():
            await self.db[collection].create_indexes(indexes)

    def close(self):
        self.client.close()
