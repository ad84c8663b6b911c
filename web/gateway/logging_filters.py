"""Logging filters for enriching log records with request context."""

from logging import Filter, LogRecord
from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    The value comes from ``REQUEST_ID_CTX``; outside a request it is the
    ContextVar default ``"-"`` so formatters can always reference
    ``%(request_id)s``. A ``request_id`` passed explicitly through ``extra``
    is kept.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
