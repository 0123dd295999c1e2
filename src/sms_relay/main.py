from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pydantic
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from .bootstrap import make_store
from .config import Settings, get_settings
from .conversation import build_view
from .db import SqlRecordStore
from .errors import RelayError, ValidationError
from .ingest import InboundIngestor
from .logging_config import configure_logging
from .models import InboundPayload, MessageQuery, SendPayload
from .phone import normalize
from .relay import OutboundRelay
from .store import RecordStore
from .twilio_client import Carrier, TwilioCarrier

logger = logging.getLogger(__name__)


# --- Dependencies ---


def get_relay(request: Request) -> OutboundRelay:
    return request.app.state.relay


def get_ingestor(request: Request) -> InboundIngestor:
    return request.app.state.ingestor


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


# --- Routes ---

router = APIRouter()


@router.get("/")
def health() -> PlainTextResponse:
    return PlainTextResponse("SMS relay running")


@router.post("/sms-proxy")
def send_sms(payload: SendPayload, relay: OutboundRelay = Depends(get_relay)) -> JSONResponse:
    """
    Relay one outbound SMS.

    Accepts JSON:

      { "to": "5551234567", "from": "5559998888", "body": "Hi", "prospect_id": "rec123" }

    "from" is optional; the first owned number is used when it is missing.
    """
    result = relay.send(payload.to_request())
    return JSONResponse(
        {
            "ok": True,
            "providerResponse": result.provider_response,
            "recordId": result.record_id,
        }
    )


async def _read_webhook_body(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError as exc:
            raise ValidationError("Body is not valid JSON") from exc
        if not isinstance(data, dict):
            raise ValidationError("Expected a JSON object")
        return data
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post("/incoming")
async def incoming_sms(
    request: Request, ingestor: InboundIngestor = Depends(get_ingestor)
) -> PlainTextResponse:
    """
    Carrier webhook for inbound SMS (JSON or form-encoded From/To/Body).

    Returns:
      - 200 "OK" once the message is stored
      - 400 if From, To or Body is missing
      - 500 if the store write failed
    """
    data = await _read_webhook_body(request)
    try:
        payload = InboundPayload.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            f"Malformed webhook payload: {exc.error_count()} bad field(s)"
        ) from exc

    await run_in_threadpool(ingestor.ingest, payload)
    return PlainTextResponse("OK")


@router.get("/conversations/{phone}")
def conversation(
    phone: str,
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    """
    Reconciled thread for one counterpart, oldest first.

    Each entry has an "outbound" flag for rendering; it is derived, never stored.
    """
    target = normalize(phone)
    if target.is_empty:
        return JSONResponse({"counterpart": "", "messages": []})

    records = store.query(MessageQuery(counterparts=target.variants()))
    view = build_view(phone, records, settings.owned_numbers)
    return JSONResponse(
        {
            "counterpart": view.counterpart,
            "messages": [
                {
                    "id": entry.record.id,
                    "counterpart": entry.record.counterpart,
                    "from": entry.record.from_number,
                    "to": entry.record.to_number,
                    "body": entry.record.body,
                    "direction": entry.direction.value,
                    "outbound": entry.outbound,
                    "timestamp": _timestamp_json(entry.record.timestamp),
                    "status": entry.record.status,
                }
                for entry in view
            ],
        }
    )


def _timestamp_json(value: object) -> Any:
    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        return isoformat()
    return value


def _describe_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


# --- App factory ---


def create_app(
    settings: Settings | None = None,
    store: RecordStore | None = None,
    carrier: Carrier | None = None,
) -> FastAPI:
    if settings is None:
        settings = get_settings()
    if store is None:
        store = make_store(settings)
    if carrier is None:
        carrier = TwilioCarrier(settings)

    relay = OutboundRelay(
        store=store,
        carrier=carrier,
        owned_numbers=settings.owned_numbers,
        audit_write_timeout=settings.audit_write_timeout_seconds,
    )
    ingestor = InboundIngestor(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Startup: runs once before the app starts serving requests
        configure_logging(settings.log_level)
        logger.info("sms-relay starting with %s", type(store).__name__)
        if isinstance(store, SqlRecordStore):
            store.init_db()
        yield
        # Shutdown: let pending audit writes finish
        relay.close()

    app = FastAPI(title="sms-relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.relay = relay
    app.state.ingestor = ingestor

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            {"error": f"Malformed request: {_describe_errors(exc)}"}, status_code=400
        )

    app.include_router(router)
    return app


app = create_app()
