from typing import Any, List, Optional
from orderflow.repositories.base import BaseRepository
from orderflow.models.base import utcnow
from orderflow.models.document import Document, DocumentStatus

class DocumentRepository(BaseRepository[Document]):

    async def get_by_document_id(self, document_id: str, owner_id: Optional[str] = None) -> Optional[Document]:
        return await self.get_by_field("document_id", document_id, owner_id=owner_id)

    async def set_status(self, document_id: str, status: DocumentStatus, **fields: Any) -> bool:
        fields["status"] = status.value
        return await self.update_by_field("document_id", document_id, fields)

    async def mark_error(self, document_id: str, reason: str) -> bool:
        return await self.set_status(document_id, DocumentStatus.ERROR, error_reason=reason)

    async def link_order(self, document_id: str, order_id: str) -> bool:
        """Sets order_id exactly once; a document already linked is left untouched."""
        result = await self.collection.update_one(
            {"document_id": document_id, "order_id": None},
            {"$set": {
                "order_id": order_id,
                "status": DocumentStatus.ASSIGNED.value,
                "updated_at": utcnow(),
            }},
        )
        return result.matched_count > 0

    async def attach_file(self, document_id: str, storage_ref: str, mime_type: str) -> bool:
        return await self.update_by_field("document_id", document_id,
                                          {"storage_ref": storage_ref, "mime_type": mime_type})

    async def set_review_flags(self, document_id: str, flags: List[str]) -> bool:
        return await self.update_by_field("document_id", document_id, {"review_flags": flags})
