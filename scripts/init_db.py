import asyncio
import logging

from orderflow.config import settings
from orderflow.database import Database, INDEXES

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

async def init_db():
    logger.info(f"Connecting to {settings.MONGODB_URL}...")
    database = Database.connect(settings.MONGODB_URL, settings.DB_NAME, settings.STORAGE_BUCKET)
    for collection in INDEXES:
        logger.info(f"Creating indexes on '{collection}'...")
    await database.create_indexes()
    logger.info("Database initialization complete.")
    database.close()

if __name__ == "__main__":
    asyncio.run(init_db())
