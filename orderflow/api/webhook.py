import logging
from fastapi import APIRouter, BackgroundTasks, Depends

from orderflow.api.deps import get_owner_id, get_services
from orderflow.container import ServiceContainer
from orderflow.models.events import EventKind, InboundEvent
from orderflow.models.results import HandlerResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["Webhook"])

@router.post("/messages", response_model=HandlerResponse)
async def receive_message(
    event: InboundEvent,
    background_tasks: BackgroundTasks,
    owner_id: str = Depends(get_owner_id),
    services: ServiceContainer = Depends(get_services),
):
    """
    Always answers 200 so the gateway does not redeliver; the body says what happened.
    Documents are processed after the response is sent.
    """
    if event.kind == EventKind.DOCUMENT:
        background_tasks.add_task(services.events.handle, owner_id, event)
        return HandlerResponse(success=True, message="Document accepted for processing")
    return await services.events.handle(owner_id, event)
