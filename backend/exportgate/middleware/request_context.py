"""
Request context middleware.

Generates or propagates X-Request-ID headers and stores the request id, plus
the shipment id when the path addresses one, in ContextVars so log lines
emitted anywhere during the request carry them.
"""

import re
import time
import logging
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_shipment_id_var: ContextVar[str] = ContextVar("shipment_id", default="")

# /api/permits/SHP-2025-0001/STA_2010, /api/compliance/SHP-2025-0001, ...
_SHIPMENT_IN_PATH = re.compile(r"/(SHP-[A-Za-z0-9-]+)")


def get_request_id() -> str:
    return _request_id_var.get()


def get_shipment_id() -> str:
    return _shipment_id_var.get()


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        match = _SHIPMENT_IN_PATH.search(request.url.path)
        shipment_id = match.group(1) if match else ""

        request_token = _request_id_var.set(request_id)
        shipment_token = _shipment_id_var.set(shipment_id)

        start_time = time.time()
        try:
            response = await call_next(request)
            duration_ms = round((time.time() - start_time) * 1000, 2)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "%s %s %s %.0fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={"duration_ms": duration_ms},
            )
        finally:
            _shipment_id_var.reset(shipment_token)
            _request_id_var.reset(request_token)

        return response
