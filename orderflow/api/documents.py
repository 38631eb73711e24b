from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from orderflow.api.deps import get_owner_id, get_services, to_http
from orderflow.container import ServiceContainer
from orderflow.errors import NotFoundError, ValidationError
from orderflow.models.document import DocumentSource
from orderflow.models.events import DocumentSourceDescriptor
from orderflow.models.results import HandlerResponse

router = APIRouter(prefix="/api/documents", tags=["Documents"])

ALLOWED_UPLOAD_TYPES = ["application/pdf", "image/png", "image/jpeg"]

@router.post("/upload", response_model=HandlerResponse)
async def upload_document(
    file: UploadFile = File(...),
    counterpart_id: str = Form(...),
    owner_id: str = Depends(get_owner_id),
    services: ServiceContainer = Depends(get_services),
):
    if file.content_type not in ALLOWED_UPLOAD_TYPES:
        raise HTTPException(status_code=400, detail="Invalid file type. Only PDF, PNG, JPEG allowed.")

    counterpart = await services.database.counterparts.get_by_counterpart_id(counterpart_id, owner_id=owner_id)
    if not counterpart:
        raise HTTPException(status_code=404, detail=f"Counterpart {counterpart_id} not found")

    source = DocumentSourceDescriptor(
        content=await file.read(),
        filename=file.filename or "upload",
        mime_type=file.content_type,
    )
    response = await services.processor.process(owner_id, source, counterpart, DocumentSource.MANUAL_UPLOAD)
    return to_http(response)

@router.get("/files/{ref}")
async def download_file(ref: str, services: ServiceContainer = Depends(get_services)):
    try:
        content, filename, mime_type = await services.storage.get(ref)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(
        content=content,
        media_type=mime_type,
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
