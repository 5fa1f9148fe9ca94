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

from sms_inbox.metrics import record_http_request
from sms_inbox.utils import mask_number


# request_id of the request currently being handled
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding an ISO-8601 `ts`, the level name and the request_id."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        # ISO-8601 with millisecond precision and Z suffix
        if not log_record.get('ts'):
            log_record['ts'] = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
        log_record['level'] = record.levelname

        # Pull request_id from context unless the caller passed one in extra
        if 'request_id' not in log_record:
            req_id = request_id_ctx.get()
            if req_id:
                log_record['request_id'] = req_id


def setup_logging(log_level: str = "INFO"):
    """
    Setup structured JSON logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    # Configure root logger, replacing any handlers installed earlier
    logger = logging.getLogger()
    logger.setLevel(log_level.upper())
    logger.handlers = []

    # One JSON handler on stdout shared by the root and uvicorn loggers
    json_handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        '%(ts)s %(level)s %(name)s %(message)s'
    )
    json_handler.setFormatter(formatter)
    logger.addHandler(json_handler)

    # Route uvicorn through the same handler instead of its own formatters
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = []
        uvicorn_logger.addHandler(json_handler)
        uvicorn_logger.propagate = False

    # RequestLoggingMiddleware replaces the access log
    logging.getLogger("uvicorn.access").disabled = True

    return logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every HTTP request as one structured JSON line.

    Keys: ts, level, request_id, method, path, status, latency_ms.
    Webhook requests also carry `from` (masked) and `result`
    (received, invalid_json, error).
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Unique per request, echoed back as X-Request-ID
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        # Every logger in this request picks the id up from context
        token = request_id_ctx.set(request_id)

        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            latency_seconds = time.perf_counter() - start_time


            # keep /metrics out of its own numbers
            if request.url.path != "/metrics":
                record_http_request(
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    latency_seconds=latency_seconds
                )

            log_data = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(latency_seconds * 1000, 2),
            }

            # Webhook routes attach masked sender and result here
            if hasattr(request.state, "webhook_log_data"):
                log_data.update(request.state.webhook_log_data)

            logger = logging.getLogger("sms_inbox.requests")

            if response.status_code >= 500:
                logger.error("Request completed", extra=log_data)
            elif response.status_code >= 400:
                logger.warning("Request completed", extra=log_data)
            else:
                logger.info("Request completed", extra=log_data)

            return response
        finally:
            # Reset context so the id never leaks into the next request
            request_id_ctx.reset(token)


def log_webhook_data(request: Request, from_number: str = None, result: str = None):
    """
    Attach webhook-specific logging data to the request state.
    The middleware merges it into the request log line.

    Args:
        request: FastAPI request object
        from_number: Normalized sender, masked before logging
        result: Processing result (received, invalid_json, error)
    """
    webhook_data = {}

    if from_number is not None:
        webhook_data["from"] = mask_number(from_number)

    if result is not None:
        webhook_data["result"] = result

    request.state.webhook_log_data = webhook_data
