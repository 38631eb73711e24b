from contextlib import asynccontextmanager
from fastapi import FastAPI
import uvicorn
import logging

from orderflow.config import settings
from orderflow.container import ServiceContainer
from orderflow.api import documents, orders, webhook

# Setup Logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    services = ServiceContainer.build(settings)
    app.state.services = services
    logger.info(f"Order flow services started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        await services.close()

app = FastAPI(
    title="Order Flow API",
    description="Order lifecycle orchestration over a messaging channel",
    version="1.0.0",
    lifespan=lifespan,
)

# Router Registration
app.include_router(webhook.router)
app.include_router(documents.router)
app.include_router(orders.router)

# Health Check
@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT}

if __name__ == "__main__":
    uvicorn.run("orderflow.main:app", host="0.0.0.0", port=8000, reload=True)
