from fastapi import Header, HTTPException, Request
from fastapi.responses import JSONResponse

from orderflow.container import ServiceContainer
from orderflow.models.results import HandlerResponse

OUTCOME_STATUS = {
    "not_found": 404,
    "rejected": 400,
    "declined": 409,
}

async def get_services(request: Request) -> ServiceContainer:
    """Dependency for FastAPI."""
    return request.app.state.services

async def get_owner_id(x_owner_id: str = Header(..., alias="X-Owner-Id")) -> str:
    if not x_owner_id.strip():
        raise HTTPException(status_code=400, detail="X-Owner-Id header is empty")
    return x_owner_id.strip()

def to_http(response: HandlerResponse) -> JSONResponse:
    """Validation problems become 4xx; upstream failures a 502 carrying the same body."""
    if response.success:
        status_code = 200
    else:
        status_code = OUTCOME_STATUS.get(response.outcome, 502)
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
