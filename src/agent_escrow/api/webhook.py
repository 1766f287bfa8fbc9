"""Webhook listener for lifecycle notifications.

Accepts exactly one route, POST <path>. Everything else is a 404 (including
other methods on <path>). Responses:

    200 {"received": true}              handler ran to completion
    400 {"error": "Invalid JSON"}       body does not parse as JSON
    401 {"error": ...}                  signature missing/invalid (only when a secret is set)
    404 {"error": "Not found"}          wrong method or path
    500 {"error": "Handler failed"}     handler raised; the listener keeps serving

The signature is checked against the raw body before it is parsed, and the
handler is never invoked for a request that fails authentication. Any JSON
value that parses reaches the handler as a WebhookEvent whose `payload` is the
parsed body.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agent_escrow.api.middleware import RequestIDMiddleware
from agent_escrow.domain.webhook_signature import (
    DEFAULT_TOLERANCE_SECONDS,
    verify_webhook_signature,
)
from agent_escrow.logging_config import get_logger
from agent_escrow.schemas.marketplace import WebhookEvent

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    WebhookHandler = Callable[[WebhookEvent], Awaitable[Any] | Any]

logger = get_logger(__name__)

DEFAULT_SIGNATURE_HEADER = "X-Abbababa-Signature"

_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_webhook_app(
    handler: WebhookHandler,
    *,
    path: str = "/webhook",
    signing_secret: str = "",
    signature_header: str = DEFAULT_SIGNATURE_HEADER,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    lifespan: Any = None,
) -> FastAPI:
    """Build the listener app around handler (sync or async)."""
    if not signing_secret:
        logger.warning("webhook.unsigned", detail="No signing secret configured; signatures are not verified")

    app = FastAPI(
        title="Agent Escrow Webhooks",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.add_middleware(RequestIDMiddleware)

    @app.api_route("/{full_path:path}", methods=_ALL_METHODS, include_in_schema=False)
    async def receive(request: Request, full_path: str) -> JSONResponse:
        if request.method != "POST" or request.url.path != path:
            return _error(404, "Not found")

        body = await request.body()

        if signing_secret:
            header = request.headers.get(signature_header)
            if not verify_webhook_signature(body, header, signing_secret, tolerance_seconds):
                logger.warning("webhook.rejected", reason="invalid_signature", has_header=bool(header))
                return _error(401, "Invalid or missing webhook signature")

        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("webhook.rejected", reason="invalid_json")
            return _error(400, "Invalid JSON")

        event = WebhookEvent.from_payload(payload)

        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("webhook.handler_failed", webhook_event=event.event)
            return _error(500, "Handler failed")

        logger.info("webhook.received", webhook_event=event.event, transaction_id=event.transaction_id)
        return JSONResponse(status_code=200, content={"received": True})

    return app


class WebhookServer:
    """Run the listener in the current event loop with uvicorn.

    Usage:
        server = WebhookServer(handle_event, signing_secret=secret)
        url = await server.start(3001)
        ...
        await server.stop()
    """

    def __init__(
        self,
        handler: WebhookHandler,
        *,
        path: str = "/webhook",
        signing_secret: str = "",
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        host: str = "0.0.0.0",
    ) -> None:
        self.path = path
        self.app = create_webhook_app(
            handler,
            path=path,
            signing_secret=signing_secret,
            signature_header=signature_header,
            tolerance_seconds=tolerance_seconds,
        )
        self._host = host
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.started

    async def start(self, port: int) -> str:
        """Start serving and return the public URL once the socket is bound."""
        if self._server is not None:
            raise RuntimeError("Webhook server is already running")

        config = uvicorn.Config(self.app, host=self._host, port=port, lifespan="off", log_config=None)
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())
        while not self._server.started:
            if self._task.done():
                task, self._server, self._task = self._task, None, None
                error = None if task.cancelled() else task.exception()
                logger.error("webhook.server_failed", port=port, error=str(error))
                raise RuntimeError(f"Webhook server failed to start on port {port}") from error
            await asyncio.sleep(0.05)

        url = f"http://localhost:{port}{self.path}"
        logger.info("webhook.server_started", url=url)
        return url

    async def stop(self) -> None:
        if self._server is None or self._task is None:
            return
        self._server.should_exit = True
        await self._task
        self._server = None
        self._task = None
        logger.info("webhook.server_stopped")
