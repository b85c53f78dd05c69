"""Correlation IDs: tie every log line of one discovery request together.

A single recommendation request logs from the client, the fan-out and the
recommender; the correlation ID lets those lines be grepped as one unit.
"""

import logging
import uuid
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

HEADER = "X-Correlation-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Current request's correlation ID, or "" outside a request."""
    return correlation_id_var.get()


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:16]


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Read X-Correlation-ID from the request (or mint one) and echo it back."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(HEADER) or generate_correlation_id()
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
            response.headers[HEADER] = correlation_id
            return response
        finally:
            correlation_id_var.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Stamp log records with the current correlation ID ("-" when none)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True
