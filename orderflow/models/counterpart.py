from datetime import datetime
from typing import Optional
from pydantic import Field
from orderflow.models.base import MongoModel, utcnow

class Counterpart(MongoModel):
    """
    Supplier reachable over the messaging channel.
    """
    counterpart_id: str = Field(..., description="Unique counterpart ID")
    owner_id: str

    canonical_phone: str = Field(..., description="+<country><10 digits>, unique per owner")
    display_name: str
    tax_id: Optional[str] = None
    auto_flow_enabled: bool = True

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
