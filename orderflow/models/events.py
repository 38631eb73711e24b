from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator
from orderflow.models.base import utcnow

class EventKind(str, Enum):
    TEXT = "text"
    DOCUMENT = "document"

class InboundAttachment(BaseModel):
    url: str
    filename: str = "document.pdf"
    mime_type: str = "application/pdf"

class InboundEvent(BaseModel):
    """Conversational event delivered by the messaging gateway."""
    sender_phone: str
    kind: EventKind
    text: Optional[str] = None
    document: Optional[InboundAttachment] = None
    message_id: Optional[str] = None

    @model_validator(mode="after")
    def check_payload(self):
        if self.kind == EventKind.DOCUMENT and self.document is None:
            raise ValueError("document events require a document payload")
        return self

class DocumentSourceDescriptor(BaseModel):
    """Where the bytes of a document come from: already in memory, or behind a URL."""
    url: Optional[str] = None
    content: Optional[bytes] = None
    filename: str = "document.pdf"
    mime_type: Optional[str] = None

    @model_validator(mode="after")
    def check_origin(self):
        if self.url is None and self.content is None:
            raise ValueError("either url or content is required")
        return self

class FanoutEvent(BaseModel):
    entity_id: str
    new_state: str
    source: str
    timestamp: datetime = Field(default_factory=utcnow)
