import logging
from dataclasses import dataclass
import httpx
import redis.asyncio as redis

from orderflow.config import Settings
from orderflow.database import Database
from orderflow.agents.counterpart_lookup import CounterpartLookup
from orderflow.agents.document_processor import DocumentProcessor
from orderflow.agents.extraction import InvoiceExtractor
from orderflow.agents.handlers import InboundEventHandler, OrderCommands
from orderflow.agents.ingestion import DocumentIngestion
from orderflow.agents.invoice_validation import InvoiceValidator
from orderflow.agents.matching import OrderMatcher
from orderflow.tools.fanout import NotificationFanout
from orderflow.tools.messaging import MessagingGateway
from orderflow.tools.ocr_tool import OCRTool
from orderflow.tools.phone import PhoneNormalizer
from orderflow.tools.storage import GridFSStorage
from orderflow.workflow.dedup import DedupCache
from orderflow.workflow.executor import TransitionExecutor

logger = logging.getLogger(__name__)

@dataclass
class ServiceContainer:
    """Every long-lived service of the app, wired once at startup."""
    database: Database
    http_client: httpx.AsyncClient
    redis_client: redis.Redis
    phones: PhoneNormalizer
    storage: GridFSStorage
    fanout: NotificationFanout
    executor: TransitionExecutor
    extractor: InvoiceExtractor
    ingestion: DocumentIngestion
    matcher: OrderMatcher
    processor: DocumentProcessor
    events: InboundEventHandler
    commands: OrderCommands

    @classmethod
    def build(cls, settings: Settings) -> "ServiceContainer":
        database = Database.connect(settings.MONGODB_URL, settings.DB_NAME, settings.STORAGE_BUCKET)
        http_client = httpx.AsyncClient()
        redis_client = redis.from_url(settings.REDIS_URL)
        return cls.wire(settings, database, http_client, redis_client)

    @classmethod
    def wire(cls, settings: Settings, database: Database, http_client: httpx.AsyncClient,
             redis_client) -> "ServiceContainer":
        phones = PhoneNormalizer(settings.DEFAULT_COUNTRY_CODE)
        storage = GridFSStorage(database.fs, settings.PUBLIC_BASE_URL)
        gateway = MessagingGateway(
            http_client, settings.GATEWAY_BASE_URL, settings.GATEWAY_API_KEY, settings.GATEWAY_TIMEOUT_SECONDS
        )
        fanout = NotificationFanout(redis_client, settings.FANOUT_CHANNEL, settings.FANOUT_TIMEOUT_SECONDS)
        executor = TransitionExecutor(
            database.orders, database.counterparts, gateway, fanout, DedupCache(settings.DEDUP_WINDOW_SECONDS)
        )
        extractor = InvoiceExtractor(settings.HOME_CURRENCY, settings.LOW_CONFIDENCE_THRESHOLD)
        ingestion = DocumentIngestion(
            OCRTool(settings.OCR_LANGUAGES, settings.OCR_DPI),
            http_client,
            fetch_timeout=settings.DOCUMENT_FETCH_TIMEOUT_SECONDS,
            ocr_timeout=settings.OCR_TIMEOUT_SECONDS,
            ocr_max_attempts=settings.OCR_MAX_ATTEMPTS,
            native_confidence=settings.NATIVE_TEXT_CONFIDENCE,
            native_min_chars=settings.NATIVE_TEXT_MIN_CHARS,
        )
        matcher = OrderMatcher(
            database.orders, database.documents, executor, settings.MERGE_RECHECK_WINDOW_SECONDS,
            validator=InvoiceValidator(settings.HOME_CURRENCY, settings.AMOUNT_REVIEW_PCT, settings.AMOUNT_MAJOR_PCT),
        )
        processor = DocumentProcessor(ingestion, extractor, matcher, database.documents, storage)
        lookup = CounterpartLookup(database.counterparts, phones)

        return cls(
            database=database,
            http_client=http_client,
            redis_client=redis_client,
            phones=phones,
            storage=storage,
            fanout=fanout,
            executor=executor,
            extractor=extractor,
            ingestion=ingestion,
            matcher=matcher,
            processor=processor,
            events=InboundEventHandler(lookup, database.orders, executor, processor, phones),
            commands=OrderCommands(database.orders, database.documents, storage, executor),
        )

    async def close(self):
        await self.fanout.drain()
        await self.http_client.aclose()
        await self.redis_client.aclose()
        self.database.close()
        logger.info("Services closed")
