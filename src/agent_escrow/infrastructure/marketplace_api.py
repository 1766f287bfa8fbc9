"""Async client for the marketplace REST API (transactions only).

Responses use the envelope {"success": bool, "data": ..., "error": str}.
HTTP failures are mapped onto the ApiError family:

    400 -> ValidationError        401 -> AuthenticationError
    402 -> PaymentRequiredError   403 -> ForbiddenError
    404 -> NotFoundError          429 -> RateLimitError (Retry-After, default 60)
    anything else >= 400 -> ApiError(status_code)

Transport failures (DNS, connect, timeout) propagate as httpx exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from agent_escrow.domain.exceptions import (
    ApiError,
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    PaymentRequiredError,
    RateLimitError,
    ValidationError,
)
from agent_escrow.logging_config import get_logger
from agent_escrow.schemas.marketplace import DeliveryRequest, Transaction

if TYPE_CHECKING:
    from agent_escrow.config import Settings

logger = get_logger(__name__)

_DEFAULT_RETRY_AFTER = 60


def _retry_after(response: httpx.Response) -> int:
    value = response.headers.get("Retry-After", "")
    return int(value) if value.isdigit() else _DEFAULT_RETRY_AFTER


def _error_for(response: httpx.Response) -> ApiError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("error") or response.reason_phrase or "Request failed"
    details = body.get("details")

    status = response.status_code
    if status == 400:
        return ValidationError(message, details=details)
    if status == 401:
        return AuthenticationError(message)
    if status == 402:
        return PaymentRequiredError(message, payment_requirements=details or body.get("data"))
    if status == 403:
        return ForbiddenError(message)
    if status == 404:
        return NotFoundError(message)
    if status == 429:
        return RateLimitError(message, retry_after=_retry_after(response))
    return ApiError(status, message, details=details)


class MarketplaceApiClient:
    """Transactions endpoint of the marketplace API.

    Usage:
        async with MarketplaceApiClient(base_url, api_key) as api:
            txs = await api.list_transactions(role="seller", status="escrowed")
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"X-API-Key": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> MarketplaceApiClient:
        return cls(settings.api_base_url, settings.api_key, timeout=settings.api_timeout_seconds)

    async def __aenter__(self) -> MarketplaceApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            error = _error_for(response)
            logger.warning(
                "marketplace.request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                error=error.message,
            )
            raise error

        body = response.json()
        if not body.get("success", False):
            raise ApiError(response.status_code, body.get("error") or "Request was not successful")
        return body.get("data")

    async def list_transactions(
        self,
        role: str = "seller",
        status: str | None = None,
        limit: int = 50,
    ) -> list[Transaction]:
        params: dict[str, Any] = {"role": role, "limit": limit}
        if status:
            params["status"] = status
        data = await self._request("GET", "/api/v1/transactions", params=params)
        return [Transaction.model_validate(tx) for tx in (data or {}).get("transactions", [])]

    async def get_transaction(self, transaction_id: str) -> Transaction:
        data = await self._request("GET", f"/api/v1/transactions/{transaction_id}")
        return Transaction.model_validate(data)

    async def deliver(self, transaction_id: str, response_payload: Any) -> Transaction:
        body = DeliveryRequest(response_payload=response_payload).model_dump(by_alias=True)
        data = await self._request("POST", f"/api/v1/transactions/{transaction_id}/deliver", json=body)
        logger.info("marketplace.delivered", transaction_id=transaction_id)
        return Transaction.model_validate(data)
