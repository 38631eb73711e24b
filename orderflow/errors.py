class OrderFlowError(Exception):
    """Base class for errors raised inside the order flow."""

class ValidationError(OrderFlowError):
    """Malformed input (bad phone, unknown order id). Never retried."""

class TransientIOError(OrderFlowError):
    """Timeout or failure talking to the gateway, OCR engine, storage or a document URL."""

class DataConflictError(OrderFlowError):
    """A write lost against a concurrent writer."""

class NotFoundError(ValidationError):
    """Unknown order, counterpart, document or stored file."""
