"""Wire schemas for the marketplace API and webhooks."""

from agent_escrow.schemas.marketplace import DeliveryRequest, Transaction, WebhookEvent

__all__ = ["DeliveryRequest", "Transaction", "WebhookEvent"]
