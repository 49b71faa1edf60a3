import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse

from notifier.config import Settings, load_settings
from notifier.dedup import EventCache
from notifier.logger import setup_logging, with_fields
from notifier.service import NotificationService
from notifier.signature import SignatureVerifier
from notifier.telegram import DeliveryError, TelegramClient

SERVICE_NAME = "git-to-telegram-notifier"

EVENT_HEADER = "X-GitHub-Event"
DELIVERY_HEADER = "X-GitHub-Delivery"
SIGNATURE_HEADER = "X-Hub-Signature-256"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _decode_payload(raw_body: bytes, content_type: str) -> dict[str, Any]:
    """Decode a JSON body, or a form body whose ``payload`` field holds JSON."""
    text = raw_body.decode("utf-8")
    if content_type.startswith(FORM_CONTENT_TYPE) or text.startswith("payload="):
        fields = parse_qs(text)
        if "payload" not in fields:
            raise ValueError("form body has no payload field")
        text = fields["payload"][0]

    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


async def _process_in_background(
    service: NotificationService,
    logger: logging.Logger,
    event_type: str,
    delivery_id: str,
    payload: dict[str, Any],
) -> None:
    # The webhook was already acknowledged; failures only reach the logs.
    try:
        await service.process_event(event_type, delivery_id, payload)
    except Exception:
        repository = payload.get("repository")
        logger.exception(
            "Async event processing failed",
            extra=with_fields(
                event_type=event_type,
                delivery_id=delivery_id,
                repository=repository.get("full_name")
                if isinstance(repository, dict)
                else None,
            ),
        )


def create_app(
    settings: Settings,
    logger: logging.Logger,
    telegram: TelegramClient | None = None,
) -> FastAPI:
    telegram = telegram or TelegramClient(settings.telegram_bot_token, logger)
    cache = EventCache(
        logger,
        max_entries=settings.dedup_max_entries,
        expiration_seconds=settings.dedup_expiration_seconds,
        cleanup_interval_seconds=settings.dedup_cleanup_interval_seconds,
    )
    service = NotificationService(settings.telegram_chat_id, telegram, cache, logger)
    verifier = SignatureVerifier(settings.github_webhook_secret)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.start()
        logger.info(
            "Git-to-Telegram notifier started",
            extra=with_fields(port=settings.port, environment=settings.environment),
        )
        if await service.test_telegram_connection():
            logger.info("Telegram connection successful - notifications enabled")
        else:
            logger.warning("Telegram connection failed - notifications will not work")
        yield
        logger.info("Shutting down gracefully")
        await service.shutdown()
        await telegram.aclose()

    app = FastAPI(title="Git-to-Telegram Notifier", lifespan=lifespan)
    app.state.service = service

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        log = logger.error if response.status_code >= 400 else logger.info
        log(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra=with_fields(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 1),
                user_agent=request.headers.get("user-agent"),
            ),
        )
        return response

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error(
            f"Unhandled error occurred: {exc}",
            exc_info=exc,
            extra=with_fields(method=request.method, path=request.url.path),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "message": "An unexpected error occurred",
            },
        )

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "cache": service.cache_stats().model_dump(mode="json"),
        }

    @app.get("/test-telegram")
    async def test_telegram():
        try:
            if not await service.test_telegram_connection():
                return JSONResponse(
                    status_code=500,
                    content={
                        "status": "error",
                        "message": "Telegram connection test failed",
                    },
                )
            await service.send_test_message()
        except DeliveryError as e:
            logger.error(f"Telegram test endpoint error: {e}")
            return JSONResponse(
                status_code=500,
                content={
                    "status": "error",
                    "message": "Telegram test failed",
                    "error": str(e),
                },
            )

        return {
            "status": "ok",
            "message": "Telegram connection test successful and test message sent",
        }

    @app.post("/webhook")
    async def handle_webhook(request: Request, background_tasks: BackgroundTasks):
        event_type = request.headers.get(EVENT_HEADER)
        delivery_id = request.headers.get(DELIVERY_HEADER)
        signature = request.headers.get(SIGNATURE_HEADER)

        if not (event_type and delivery_id and signature):
            logger.warning(
                "Missing required GitHub webhook headers",
                extra=with_fields(
                    event_type=event_type,
                    delivery_id=delivery_id,
                    has_signature=bool(signature),
                ),
            )
            return JSONResponse(
                status_code=400, content={"error": "Missing required webhook headers"}
            )

        raw_body = await request.body()
        if not verifier.validate(raw_body, signature):
            logger.warning(
                "Invalid webhook signature",
                extra=with_fields(
                    signature=signature[:16] + "...", body_length=len(raw_body)
                ),
            )
            return JSONResponse(status_code=401, content={"error": "Invalid signature"})

        content_type = request.headers.get("content-type", "")
        try:
            payload = _decode_payload(raw_body, content_type)
        except ValueError as e:
            logger.error(
                f"Failed to decode webhook payload: {e}",
                extra=with_fields(event_type=event_type, delivery_id=delivery_id),
            )
            return JSONResponse(
                status_code=400, content={"error": "Invalid payload format"}
            )

        repository = payload.get("repository")
        logger.info(
            "Received GitHub webhook",
            extra=with_fields(
                event_type=event_type,
                delivery_id=delivery_id,
                repository=repository.get("full_name")
                if isinstance(repository, dict)
                else None,
                payload_type="form-encoded"
                if content_type.startswith(FORM_CONTENT_TYPE)
                else "json",
            ),
        )

        background_tasks.add_task(
            _process_in_background, service, logger, event_type, delivery_id, payload
        )
        return {"message": "Webhook received successfully"}

    return app


settings = load_settings()
logger = setup_logging(settings.log_level, settings.log_format)
app = create_app(settings, logger)


def run() -> None:
    # uvicorn spells the warning level out in full
    log_level = "warning" if settings.log_level == "warn" else settings.log_level
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=log_level)
