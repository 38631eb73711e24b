import logging
from typing import Any, Dict, Optional, Tuple
from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorGridFSBucket

from orderflow.errors import NotFoundError, ValidationError, TransientIOError

logger = logging.getLogger(__name__)

class GridFSStorage:
    """Binary store for received documents and payment receipts."""

    def __init__(self, bucket: AsyncIOMotorGridFSBucket, public_base_url: str):
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    async def put(self, filename: str, content: bytes, mime_type: str,
                  metadata: Optional[Dict[str, Any]] = None) -> str:
        """Stores the bytes and returns the storage reference."""
        meta = {"content_type": mime_type, **(metadata or {})}
        try:
            file_id = await self.bucket.upload_from_stream(filename, content, metadata=meta)
        except Exception as e:
            raise TransientIOError(f"Storage upload failed for {filename}: {e}") from e
        logger.info(f"Stored {filename} as {file_id}")
        return str(file_id)

    async def get(self, ref: str) -> Tuple[bytes, str, str]:
        """Returns (content, filename, mime_type)."""
        try:
            oid = ObjectId(ref)
        except (InvalidId, TypeError) as e:
            raise ValidationError(f"Invalid storage reference: {ref}") from e
        try:
            stream = await self.bucket.open_download_stream(oid)
        except NoFile as e:
            raise NotFoundError(f"No stored file for reference {ref}") from e
        content = await stream.read()
        metadata = stream.metadata or {}
        return content, stream.filename, metadata.get("content_type", "application/octet-stream")

    def url_for(self, ref: str) -> str:
        return f"{self.public_base_url}/api/documents/files/{ref}"
