"""Application services: escrow lifecycle use cases."""

from agent_escrow.services.agents import BuyerAgent, SellerAgent
from agent_escrow.services.dispute_service import DisputeResolverService, validate_split
from agent_escrow.services.escrow_service import EscrowService
from agent_escrow.services.gas_strategy import resolve_gas_strategy, select_gas_strategy
from agent_escrow.services.purchase_poller import PurchasePoller, TransactionFeed
from agent_escrow.services.reputation_service import ReputationService

__all__ = [
    "BuyerAgent",
    "DisputeResolverService",
    "EscrowService",
    "PurchasePoller",
    "ReputationService",
    "SellerAgent",
    "TransactionFeed",
    "resolve_gas_strategy",
    "select_gas_strategy",
    "validate_split",
]
