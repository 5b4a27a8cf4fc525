"""Structured JSON logging for tracker sessions.

Every record carries the request trace id plus the invoice and session id of
the tracker that emitted it. Poll tasks copy the context they were created in,
so binding the ids once with `tracker_context` around `Poller.start` tags every
later poll, transition and confirmation log line of that session.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from pythonjsonlogger.json import JsonFormatter

from tenantpay.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
invoice_id_ctx: ContextVar[str] = ContextVar("invoice_id", default="")
session_id_ctx: ContextVar[str] = ContextVar("session_id", default="")


@contextmanager
def tracker_context(invoice_id: str, session_id: str) -> Iterator[None]:
    """Bind one tracker's ids for log records emitted inside the block."""

    invoice_token = invoice_id_ctx.set(invoice_id)
    session_token = session_id_ctx.set(session_id)
    try:
        yield
    finally:
        invoice_id_ctx.reset(invoice_token)
        session_id_ctx.reset(session_token)


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.invoice_id = invoice_id_ctx.get()
        record.session_id = session_id_ctx.get()
        return True


def configure_logging() -> None:
    """Configure root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(invoice_id)s %(session_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)


logger = logging.getLogger("tenantpay")
