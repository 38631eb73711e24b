from orderflow.models.base import MongoModel
from orderflow.models.order import Order, OrderStatus, OrderSource, LineItem, LEGACY_STATUS_ALIASES
from orderflow.models.counterpart import Counterpart
from orderflow.models.document import Document, DocumentStatus, DocumentSource
from orderflow.models.invoice import ExtractedInvoiceData, ExtractedLineItem
from orderflow.models.events import InboundEvent, InboundAttachment, EventKind, DocumentSourceDescriptor, FanoutEvent
from orderflow.models.results import TransitionOutcome, TransitionResult, ResolveResult, IngestResult, HandlerResponse
