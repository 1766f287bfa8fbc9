"""Pydantic schemas for the marketplace API and webhook payloads.

Field names are snake_case in Python and camelCase on the wire; both are
accepted when parsing.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Purchase feed
# ---------------------------------------------------------------------------


class Transaction(BaseModel):
    """A purchase as reported by the marketplace transaction feed."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Platform transaction id")
    buyer_id: str | None = None
    seller_id: str | None = None
    amount: float | None = Field(default=None, description="Service price in currency units")
    currency: str | None = None
    status: str = Field(..., description='Feed status, e.g. "escrowed" or "pending"')
    request_payload: Any = Field(default=None, description="Buyer's request body, free-form")


class DeliveryRequest(BaseModel):
    """Body sent to POST /api/v1/transactions/{id}/deliver."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    response_payload: Any


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class WebhookEvent(BaseModel):
    """An authenticated lifecycle notification.

    Every field is optional and vendors add fields freely; they are kept.
    `payload` is the parsed JSON body exactly as received, which is the only
    view of a body that is not an object or does not fit these fields.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    event: str | None = Field(default=None, examples=["escrow.funded", "delivery.submitted"])
    transaction_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str | int | None = None

    _payload: Any = PrivateAttr(default=None)

    @property
    def payload(self) -> Any:
        return self._payload

    @classmethod
    def from_payload(cls, payload: Any) -> WebhookEvent:
        """Wrap any parsed JSON body; objects that fit populate the typed fields."""
        try:
            event = cls.model_validate(payload) if isinstance(payload, dict) else cls()
        except ValidationError:
            event = cls()
        event._payload = payload
        return event
