import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from companion.metrics import record_http_request


# HTTP request id inside the API, cycle id inside the worker
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
UNINSTRUMENTED_PATHS = frozenset({"/metrics"})


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds ts (UTC, millisecond ISO-8601), level and the active correlation_id."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get('ts'):
            log_record['ts'] = datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
        log_record['level'] = record.levelname

        correlation_id = log_record.get('correlation_id') or correlation_id_ctx.get()
        if correlation_id:
            log_record['correlation_id'] = correlation_id


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Route the root logger and uvicorn's loggers to one JSON handler on stdout.

    Safe to call more than once; earlier handlers are replaced.
    """
    root = logging.getLogger()
    root.setLevel(log_level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter('%(ts)s %(level)s %(name)s %(message)s'))
    root.handlers = [handler]

    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False

    # RequestLoggingMiddleware writes the access line
    logging.getLogger("uvicorn.access").disabled = True
    # twilio logs request bodies, which carry phone numbers, at INFO
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)

    return root


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One JSON line per HTTP request.

    Keys: ts, level, correlation_id, method, path, status, latency_ms, plus
    result and intake_request_id when the intake route attached them.
    The correlation id is echoed back in X-Request-ID.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = correlation_id_ctx.set(correlation_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = correlation_id
            elapsed = time.perf_counter() - started

            if request.url.path not in UNINSTRUMENTED_PATHS:
                record_http_request(request.method, request.url.path, response.status_code, elapsed)

            fields = {
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(elapsed * 1000, 2),
            }
            fields.update(getattr(request.state, "intake_log_data", {}))

            if response.status_code >= 500:
                level = logging.ERROR
            elif response.status_code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO
            logging.getLogger("companion.requests").log(level, "Request completed", extra=fields)

            return response
        finally:
            correlation_id_ctx.reset(token)


def log_intake_data(request: Request, result: str, intake_request_id: Optional[str] = None):
    """Attach the intake result (and stored id, if any) to this request's access line."""
    intake_data = {"result": result}
    if intake_request_id is not None:
        intake_data["intake_request_id"] = intake_request_id
    request.state.intake_log_data = intake_data
