import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Optional
from urllib.parse import parse_qsl

from fastapi import FastAPI, Request, Response, Depends, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse

from sms_inbox import __version__
from sms_inbox.config import Settings, get_settings
from sms_inbox.logging_utils import setup_logging, RequestLoggingMiddleware, log_webhook_data
from sms_inbox.metrics import (
    record_webhook_outcome,
    record_otp_detected,
    get_metrics,
    get_metrics_content_type,
)
from sms_inbox.normalizer import normalize
from sms_inbox.otp import extract_otp
from sms_inbox.render import render_page, render_rows
from sms_inbox.schemas import (
    ErrorResponse,
    HealthResponse,
    MessagesListResponse,
    SmsRecordResponse,
    WebhookResponse,
)
from sms_inbox.storage import MessageStore, get_store
from sms_inbox.utils import scrub_text

logger = logging.getLogger(__name__)

# Fixed dashboard window, not exposed as a query parameter
DASHBOARD_LIMIT = 100

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class InvalidPayload(ValueError):
    """Request body could not be decoded into a payload."""


FORM_KEY_PART = re.compile(r"[^\[\]]+")


def expand_form_fields(pairs) -> dict:
    """
    Build a dict from url-encoded pairs, nesting bracketed keys.

    `data[payload][from]=+44...` becomes {"data": {"payload": {"from": "+44..."}}}
    so form envelopes unwrap like JSON ones. Plain keys stay flat.
    """
    form = {}
    for key, value in pairs:
        parts = FORM_KEY_PART.findall(key) or [key]
        node = form
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[parts[-1]] = value
    return form


def decode_body(raw_body: bytes, content_type: str) -> Any:
    """
    Decode a webhook body into a Python value.

    JSON is the default; url-encoded forms become a dict of strings, with
    bracketed keys nested. An empty body decodes to an empty dict.

    Raises:
        InvalidPayload: body is not valid JSON / UTF-8, or nests too deeply
    """
    if not raw_body.strip():
        return {}
    try:
        if content_type.startswith(FORM_CONTENT_TYPE):
            return expand_form_fields(parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True))
        return json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
        raise InvalidPayload(str(e) or type(e).__name__) from e


def serialize_payload(payload: Any) -> str:
    """Compact JSON copy of the inbound payload, kept for debugging."""
    return scrub_text(json.dumps(payload, separators=(",", ":"), ensure_ascii=False))


def create_app(store: Optional[MessageStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        store: Message store to use; built from DATABASE_URL when omitted
        settings: Settings to use; read from the environment when omitted
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)
    store = store or MessageStore(settings.DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the sms table on startup."""
        app.state.store.init_schema()
        yield

    app = FastAPI(
        title="SMS Inbox",
        description="Provider SMS webhook with an OTP-highlighting inbox",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.add_middleware(RequestLoggingMiddleware)

    # =========================================================================
    # Health Check Routes
    # =========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_live() -> HealthResponse:
        """Liveness probe - always 200 once the app is running."""
        return HealthResponse(status="ok")

    @app.get("/health/ready", response_model=HealthResponse, response_model_exclude_none=True)
    def health_ready(response: Response, store: MessageStore = Depends(get_store)) -> HealthResponse:
        """
        Readiness probe - 200 only if the DB is reachable and the sms table exists,
        otherwise 503.
        """
        if not store.check_health():
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return HealthResponse(
                status="not_ready",
                reason="Database not reachable or schema not applied"
            )
        return HealthResponse(status="ready")

    # =========================================================================
    # Webhook Route
    # =========================================================================

    @app.post(
        "/webhook/sms",
        response_model=WebhookResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Body is not valid JSON"},
            500: {"model": ErrorResponse, "description": "Normalization or storage failed"},
        }
    )
    async def sms_webhook(request: Request, store: MessageStore = Depends(get_store)):
        """
        Ingest one inbound SMS notification.

        Any payload shape is accepted; fields the normalizer cannot find fall
        back to defaults. Failures while normalizing or storing are reported
        as a generic internal_error.
        """
        raw_body = await request.body()
        logger.debug(f"Request body size: {len(raw_body)} bytes")

        try:
            payload = decode_body(raw_body, request.headers.get("content-type", ""))
        except InvalidPayload as e:
            logger.warning(f"Invalid webhook body: {e}")
            record_webhook_outcome("invalid_json")
            log_webhook_data(request=request, result="invalid_json")
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "invalid_json"}
            )

        try:
            sms = normalize(payload)
            record_id = await run_in_threadpool(
                store.append,
                from_number=sms.from_number,
                to_number=sms.to_number,
                body=sms.text,
                provider_raw=serialize_payload(payload),
            )
        except Exception:
            logger.exception("Failed to process SMS webhook")
            record_webhook_outcome("error")
            log_webhook_data(request=request, result="error")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "internal_error"}
            )

        logger.info(f"SMS received: id={record_id}, text_length={len(sms.text)}")
        record_webhook_outcome("received")
        log_webhook_data(request=request, from_number=sms.from_number, result="received")

        return WebhookResponse(received=True)

    # =========================================================================
    # Dashboard Routes
    # =========================================================================

    @app.get("/", response_class=HTMLResponse)
    def dashboard(store: MessageStore = Depends(get_store)) -> HTMLResponse:
        """Inbox page with the most recent messages, newest first."""
        records = store.recent(DASHBOARD_LIMIT)
        rows, otp_count = render_rows(records)
        if otp_count:
            record_otp_detected(otp_count)
        logger.info(f"Dashboard rendered {len(rows)} messages, {otp_count} with OTP")
        return HTMLResponse(content=render_page(rows))

    @app.get("/messages", response_model=MessagesListResponse)
    def list_messages(store: MessageStore = Depends(get_store)) -> MessagesListResponse:
        """Same window as the dashboard, as JSON with the detected OTP per record."""
        records = store.recent(DASHBOARD_LIMIT)
        data = [
            SmsRecordResponse(
                id=record.id,
                from_number=record.from_number,
                to_number=record.to_number,
                body=record.body or "",
                otp=extract_otp(record.body),
                created_at=record.created_at,
            )
            for record in records
        ]
        return MessagesListResponse(data=data, count=len(data))

    # =========================================================================
    # Metrics Route
    # =========================================================================

    @app.get("/metrics")
    async def metrics() -> Response:
        """Expose Prometheus-style metrics."""
        return Response(
            content=get_metrics(),
            media_type=get_metrics_content_type()
        )

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)
