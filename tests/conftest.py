import sys
import os
sys.path.append(os.getcwd())

import re
import json
import copy
import itertools
import asyncio

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from unittest.mock import patch
from bson import ObjectId
from gridfs.errors import NoFile
from pymongo.errors import DuplicateKeyError

from orderflow.config import Settings
from orderflow.container import ServiceContainer
from orderflow.models.counterpart import Counterpart
from orderflow.models.order import LineItem, Order, OrderStatus
from orderflow.repositories.counterpart import CounterpartRepository
from orderflow.repositories.document import DocumentRepository
from orderflow.repositories.order import OrderRepository
from orderflow.models.document import Document
from orderflow.models.events import EventKind, InboundAttachment, InboundEvent

OWNER_ID = "owner-1"
COUNTERPART_PHONE = "+541135562673"
# how the gateway spells the same number
SENDER_PHONE = "+54 9 11 3556-2673"


# In-memory stand-ins for motor collections. Every operation yields to the
# event loop once, so concurrent handlers interleave the way they would
# against a real server.

def _matches(doc: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    for key, cond in filter.items():
        value = doc.get(key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$in" and value not in arg:
                    return False
                if op == "$ne" and value == arg:
                    return False
                if op == "$gte" and (value is None or value < arg):
                    return False
                if op == "$lte" and (value is None or value > arg):
                    return False
                if op == "$regex" and (value is None or not re.search(arg, str(value))):
                    return False
        elif cond is None:
            if value is not None:
                return False
        elif value != cond:
            return False
    return True

class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction=None):
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction or 1)]
        for key, order in reversed(keys):
            self._docs.sort(key=lambda d: (d.get(key) is not None, d.get(key)), reverse=order < 0)
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    async def to_list(self, length: Optional[int] = None):
        await asyncio.sleep(0)
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        return [copy.deepcopy(d) for d in docs]

class FakeCollection:
    def __init__(self, unique: Optional[List[str]] = None):
        self.docs: List[Dict[str, Any]] = []
        self.unique = unique or []

    async def find_one(self, filter: Dict[str, Any]):
        await asyncio.sleep(0)
        for doc in self.docs:
            if _matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    def find(self, filter: Optional[Dict[str, Any]] = None):
        return FakeCursor([d for d in self.docs if _matches(d, filter or {})])

    async def insert_one(self, doc: Dict[str, Any]):
        await asyncio.sleep(0)
        for field in self.unique:
            if any(existing.get(field) == doc.get(field) for existing in self.docs):
                raise DuplicateKeyError(f"E11000 duplicate key error: {field}")
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any], upsert: bool = False):
        await asyncio.sleep(0)
        for doc in self.docs:
            if _matches(doc, filter):
                for key, value in update.get("$set", {}).items():
                    doc[key] = copy.deepcopy(value)
                for key, value in update.get("$addToSet", {}).items():
                    doc.setdefault(key, [])
                    if value not in doc[key]:
                        doc[key].append(value)
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def replace_one(self, filter: Dict[str, Any], doc: Dict[str, Any], upsert: bool = False):
        await asyncio.sleep(0)
        for i, existing in enumerate(self.docs):
            if _matches(existing, filter):
                replacement = copy.deepcopy(doc)
                replacement["_id"] = existing["_id"]
                self.docs[i] = replacement
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            result = await self.insert_one(doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=result.inserted_id)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def count_documents(self, filter: Dict[str, Any]):
        await asyncio.sleep(0)
        return len([d for d in self.docs if _matches(d, filter)])

    async def create_indexes(self, indexes):
        return []

class FakeDownloadStream:
    def __init__(self, entry: Dict[str, Any]):
        self._content = entry["content"]
        self.filename = entry["filename"]
        self.metadata = entry["metadata"]

    async def read(self):
        return self._content

class FakeGridFSBucket:
    def __init__(self):
        self.files: Dict[ObjectId, Dict[str, Any]] = {}

    async def upload_from_stream(self, filename, source, metadata=None):
        file_id = ObjectId()
        self.files[file_id] = {"filename": filename, "content": bytes(source), "metadata": metadata or {}}
        return file_id

    async def open_download_stream(self, file_id):
        if file_id not in self.files:
            raise NoFile(f"no file in gridfs with _id {file_id!r}")
        return FakeDownloadStream(self.files[file_id])

class FakeDatabase:
    def __init__(self):
        self.fs = FakeGridFSBucket()
        self.orders = OrderRepository(FakeCollection(unique=["order_id"]), Order)
        self.counterparts = CounterpartRepository(FakeCollection(unique=["counterpart_id"]), Counterpart)
        self.documents = DocumentRepository(FakeCollection(unique=["document_id"]), Document)
        self.closed = False

    def close(self):
        self.closed = True

class FakeRedis:
    def __init__(self, fail: bool = False):
        self.published: List[tuple] = []
        self.fail = fail

    async def publish(self, channel: str, message: str):
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.published.append((channel, json.loads(message)))
        return 1

    async def aclose(self):
        return None

class GatewayRecorder:
    """httpx.MockTransport handler recording outbound messages."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False
        self.documents: Dict[str, tuple] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/messages"):
            if self.fail:
                return httpx.Response(503, text="gateway down")
            self.sent.append(json.loads(request.content))
            return httpx.Response(200, json={"messages": [{"id": f"wamid.{len(self.sent)}"}]})
        if str(request.url) in self.documents:
            content, mime = self.documents[str(request.url)]
            return httpx.Response(200, content=content, headers={"content-type": mime})
        return httpx.Response(404, text="not found")

    def texts(self) -> List[str]:
        return [m["text"]["body"] for m in self.sent if m.get("type") == "text"]


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        GATEWAY_BASE_URL="https://gateway.test/v1/123",
        GATEWAY_API_KEY="test-key",
        PUBLIC_BASE_URL="http://orderflow.test",
        DEDUP_WINDOW_SECONDS=10.0,
        MERGE_RECHECK_WINDOW_SECONDS=120.0,
    )

@pytest.fixture
def gateway():
    return GatewayRecorder()

@pytest.fixture
def fake_redis():
    return FakeRedis()

@pytest.fixture
def fake_db():
    return FakeDatabase()

@pytest_asyncio.fixture
async def services(test_settings, fake_db, gateway, fake_redis):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(gateway))
    container = ServiceContainer.wire(test_settings, fake_db, http_client, fake_redis)
    yield container
    await container.fanout.drain()
    await http_client.aclose()

@pytest.fixture
def counterpart():
    return Counterpart(
        counterpart_id="CP-1",
        owner_id=OWNER_ID,
        canonical_phone=COUNTERPART_PHONE,
        display_name="Distribuidora El Sol",
    )

@pytest.fixture
def sample_order():
    return Order(
        order_id="ORD-250101-AB12",
        owner_id=OWNER_ID,
        counterpart_id="CP-1",
        status=OrderStatus.STANDBY,
        line_items=[LineItem(description="Harina 000", quantity=10, unit_price=1200.0, line_total=12000.0)],
        total_amount=12000.0,
    )

@pytest.fixture
def invoice_text():
    return (
        "Distribuidora El Sol S.A.\n"
        "Av. Siempreviva 742\n"
        "FACTURA A\n"
        "Nro: 0001-00004567\n"
        "CUIT: 30-71234567-1\n"
        "Fecha: 15/03/2024\n"
        "Harina 000 10 1.200,00 12.000,00\n"
        "Aceite girasol 5 2.500,00 12.500,00\n"
        "Subtotal: $ 24.500,00\n"
        "IVA 21%: $ 5.145,00\n"
        "Total: $ 29.645,00\n"
        "Moneda: ARS\n"
    )

@pytest.fixture
def seed(fake_db):
    async def _seed(*models):
        for model in models:
            if isinstance(model, Counterpart):
                await fake_db.counterparts.upsert(model)
            elif isinstance(model, Order):
                await fake_db.orders.create(model)
    return _seed

@pytest.fixture
def text_layers():
    """PDF bytes -> the text its text layer yields."""
    layers = {}
    with patch("orderflow.agents.ingestion.native_pdf_text", side_effect=lambda content: layers.get(content, "")):
        yield layers

@pytest.fixture
def send_text(services):
    async def _send_text(body="Hola, ¿cómo va el pedido?", phone=SENDER_PHONE):
        event = InboundEvent(sender_phone=phone, kind=EventKind.TEXT, text=body)
        return await services.events.handle(OWNER_ID, event)
    return _send_text

@pytest.fixture
def send_invoice(services, gateway, text_layers):
    """Delivers a PDF over the messaging channel whose text layer is `text`."""
    counter = itertools.count(1)

    async def _send_invoice(text, phone=SENDER_PHONE):
        n = next(counter)
        url = f"https://media.test/{n}"
        content = f"%PDF-1.4 invoice {n}".encode()
        gateway.documents[url] = (content, "application/pdf")
        text_layers[content] = text
        event = InboundEvent(
            sender_phone=phone,
            kind=EventKind.DOCUMENT,
            document=InboundAttachment(url=url, filename=f"factura-{n}.pdf"),
        )
        return await services.events.handle(OWNER_ID, event)
    return _send_invoice
