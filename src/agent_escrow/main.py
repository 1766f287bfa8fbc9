"""FastAPI application entry point for the Agent Escrow webhook listener.

Lifecycle:
    1. Startup: Initialize logging.
    2. Running: Receive signed lifecycle notifications on WEBHOOK_PATH.
    3. Shutdown: Nothing to release; the listener holds no connections.

The default handler only logs each authenticated event with the escrow it
refers to. Embed create_webhook_app() directly to react to events.

Run with:
    uv run uvicorn agent_escrow.main:app --host 0.0.0.0 --port 8000

or `python -m agent_escrow.main`, which binds APP_HOST and APP_PORT.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog

from agent_escrow.api.webhook import create_webhook_app
from agent_escrow.config import get_settings
from agent_escrow.domain.ids import escrow_id
from agent_escrow.logging_config import bind_escrow_context, get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fastapi import FastAPI

    from agent_escrow.schemas.marketplace import WebhookEvent

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger.info(
        "app.starting",
        env=settings.app_env,
        host=settings.app_host,
        port=settings.app_port,
        webhook_path=settings.webhook_path,
        signed=bool(settings.webhook_signing_secret),
    )

    yield

    logger.info("app.stopped")


async def log_event(event: WebhookEvent) -> None:
    """Default handler: record the event against its escrow."""
    if event.transaction_id:
        bind_escrow_context(event.transaction_id, escrow_id(event.transaction_id))
    logger.info("webhook.event", webhook_event=event.event, data=event.data)
    structlog.contextvars.unbind_contextvars("transaction_id", "escrow_id")


def create_app() -> FastAPI:
    """Application factory: creates and configures the listener app."""
    settings = get_settings()
    return create_webhook_app(
        log_event,
        path=settings.webhook_path,
        signing_secret=settings.webhook_signing_secret,
        signature_header=settings.webhook_signature_header,
        tolerance_seconds=settings.webhook_tolerance_seconds,
        lifespan=lifespan,
    )


# The app instance used by Uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(app, host=_settings.app_host, port=_settings.app_port)
