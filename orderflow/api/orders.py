from typing import Optional
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from orderflow.api.deps import get_owner_id, get_services, to_http
from orderflow.container import ServiceContainer
from orderflow.errors import NotFoundError
from orderflow.models.results import HandlerResponse

router = APIRouter(prefix="/api/orders", tags=["Orders"])

class CancelRequest(BaseModel):
    reason: Optional[str] = None

@router.get("/{order_id}")
async def get_order(
    order_id: str,
    owner_id: str = Depends(get_owner_id),
    services: ServiceContainer = Depends(get_services),
):
    try:
        order = await services.commands.get_order(owner_id, order_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return order.model_dump(mode="json", exclude={"id"})

@router.post("/{order_id}/payment-proof", response_model=HandlerResponse)
async def upload_payment_proof(
    order_id: str,
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    services: ServiceContainer = Depends(get_services),
):
    response = await services.commands.upload_payment_proof(
        owner_id, order_id, file.filename or "receipt", await file.read(),
        file.content_type or "application/octet-stream",
    )
    return to_http(response)

@router.post("/{order_id}/proof-forwarded", response_model=HandlerResponse)
async def mark_proof_forwarded(
    order_id: str,
    owner_id: str = Depends(get_owner_id),
    services: ServiceContainer = Depends(get_services),
):
    return to_http(await services.commands.mark_proof_forwarded(owner_id, order_id))

@router.post("/{order_id}/finalize", response_model=HandlerResponse)
async def finalize_order(
    order_id: str,
    owner_id: str = Depends(get_owner_id),
    services: ServiceContainer = Depends(get_services),
):
    return to_http(await services.commands.finalize(owner_id, order_id))

@router.post("/{order_id}/cancel", response_model=HandlerResponse)
async def cancel_order(
    order_id: str,
    request: Optional[CancelRequest] = None,
    owner_id: str = Depends(get_owner_id),
    services: ServiceContainer = Depends(get_services),
):
    reason = request.reason if request else None
    return to_http(await services.commands.cancel(owner_id, order_id, reason))
