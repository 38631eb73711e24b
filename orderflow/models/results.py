from enum import Enum
from typing import Optional
from pydantic import BaseModel

class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"     # same action inside the dedup window
    CONFLICT = "conflict"       # another writer advanced the order first
    DECLINED = "declined"       # no edge for (status, trigger)
    FAILED = "failed"

class TransitionResult(BaseModel):
    outcome: TransitionOutcome
    order_id: Optional[str] = None
    new_status: Optional[str] = None
    error: Optional[str] = None
    action_error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (TransitionOutcome.APPLIED, TransitionOutcome.DUPLICATE, TransitionOutcome.CONFLICT)

class ResolveResult(BaseModel):
    order_id: Optional[str] = None
    created: bool = False
    skipped: bool = False
    error: Optional[str] = None

class IngestResult(BaseModel):
    success: bool
    text: str = ""
    confidence: float = 0.0
    method: Optional[str] = None
    content: Optional[bytes] = None
    mime_type: Optional[str] = None
    error: Optional[str] = None

class HandlerResponse(BaseModel):
    """The single shape every top-level handler converges on."""
    success: bool
    message: str = ""
    order_id: Optional[str] = None
    document_id: Optional[str] = None
    status: Optional[str] = None
    outcome: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_transition(cls, result: TransitionResult) -> "HandlerResponse":
        messages = {
            TransitionOutcome.APPLIED: f"Order moved to {result.new_status}",
            TransitionOutcome.DUPLICATE: "Already processed",
            TransitionOutcome.CONFLICT: "Order was updated concurrently",
            TransitionOutcome.DECLINED: "Event does not apply to the order's current status",
            TransitionOutcome.FAILED: "Transition failed",
        }
        return cls(
            success=result.success,
            message=messages[result.outcome],
            order_id=result.order_id,
            status=result.new_status,
            outcome=result.outcome.value,
            error=result.error or result.action_error,
        )
