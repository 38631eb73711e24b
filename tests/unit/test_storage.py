import pytest

from orderflow.errors import NotFoundError, ValidationError
from orderflow.tools.storage import GridFSStorage

@pytest.fixture
def storage(fake_db):
    return GridFSStorage(fake_db.fs, "http://orderflow.test/")

@pytest.mark.asyncio
async def test_put_then_get(storage):
    ref = await storage.put("comprobante.pdf", b"%PDF-1.4 receipt", "application/pdf", metadata={"order_id": "ORD-1"})

    content, filename, mime_type = await storage.get(ref)

    assert content == b"%PDF-1.4 receipt"
    assert filename == "comprobante.pdf"
    assert mime_type == "application/pdf"

@pytest.mark.asyncio
async def test_unknown_reference(storage):
    with pytest.raises(NotFoundError):
        await storage.get("66b0c0ffee0000000000beef")

@pytest.mark.asyncio
async def test_malformed_reference(storage):
    with pytest.raises(ValidationError):
        await storage.get("not-an-object-id")

def test_url_for(storage):
    assert storage.url_for("abc123") == "http://orderflow.test/api/documents/files/abc123"
