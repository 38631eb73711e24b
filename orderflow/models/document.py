import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import Field
from orderflow.models.base import MongoModel, utcnow

class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ASSIGNED = "assigned"
    ERROR = "error"

class DocumentSource(str, Enum):
    MESSAGING = "messaging"
    MANUAL_UPLOAD = "manual_upload"
    PAYMENT_PROOF = "payment_proof"

def generate_document_id() -> str:
    return f"DOC-{uuid.uuid4().hex[:12].upper()}"

class Document(MongoModel):
    """
    A file received over the messaging channel or uploaded by the owner.
    """
    document_id: str = Field(default_factory=generate_document_id)
    owner_id: str
    counterpart_id: Optional[str] = None
    order_id: Optional[str] = None

    storage_ref: Optional[str] = None   # set once the file is stored
    filename: str
    mime_type: Optional[str] = None
    source: DocumentSource = DocumentSource.MESSAGING

    status: DocumentStatus = DocumentStatus.PENDING
    extracted_text: Optional[str] = None
    confidence: Optional[float] = None
    extraction_method: Optional[str] = None
    invoice_data: Optional[Dict[str, Any]] = None
    error_reason: Optional[str] = None
    review_flags: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
