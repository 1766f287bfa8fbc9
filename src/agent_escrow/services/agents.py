"""Buyer and seller facades over the escrow, reputation and marketplace services.

A SellerAgent discovers purchases, delivers work and proves delivery on-chain.
A BuyerAgent funds escrows within the seller's reputation ceiling and then
releases, disputes or reclaims them. Either agent works without a wallet for
API-only operations; on-chain operations raise WalletNotInitializedError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

from agent_escrow.config import get_settings
from agent_escrow.domain import ids
from agent_escrow.domain.enums import GasStrategy
from agent_escrow.domain.exceptions import ValidationError, WalletNotInitializedError
from agent_escrow.infrastructure.marketplace_api import MarketplaceApiClient
from agent_escrow.infrastructure.web3_chain import Web3ChainClient
from agent_escrow.logging_config import get_logger
from agent_escrow.services.escrow_service import EscrowService
from agent_escrow.services.gas_strategy import MIN_GAS_BALANCE_WEI, select_gas_strategy
from agent_escrow.services.purchase_poller import DEFAULT_STATUSES, PurchasePoller
from agent_escrow.services.reputation_service import ReputationService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from agent_escrow.config import Settings
    from agent_escrow.domain.chain import ChainClient
    from agent_escrow.domain.models import AgentStats, Escrow
    from agent_escrow.schemas.marketplace import Transaction

logger = get_logger(__name__)

_NO_PAYLOAD = object()


class _Agent:
    def __init__(
        self,
        api: MarketplaceApiClient | None = None,
        escrow: EscrowService | None = None,
        reputation: ReputationService | None = None,
        chain: ChainClient | None = None,
    ) -> None:
        self.api = api
        self._escrow = escrow
        self._reputation = reputation
        self._chain = chain
        self.gas_strategy: GasStrategy | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Self:
        """Wire an agent from environment configuration.

        The agent signs with PRIVATE_KEY when it is set; without it, reads work
        and every state-changing call raises WalletNotInitializedError. The
        marketplace client is attached only when API_KEY is set.
        """
        settings = settings or get_settings()
        chain = Web3ChainClient.from_settings(settings)
        return cls(
            api=MarketplaceApiClient.from_settings(settings) if settings.api_key else None,
            escrow=EscrowService(chain, settings.escrow_address, settings.token_address),
            reputation=ReputationService(chain, settings.score_address),
            chain=chain,
        )

    @property
    def wallet_address(self) -> str | None:
        return self._chain.account_address if self._chain else None

    @property
    def escrow(self) -> EscrowService:
        if self._escrow is None:
            raise WalletNotInitializedError()
        return self._escrow

    def _require_api(self) -> MarketplaceApiClient:
        if self.api is None:
            raise ValidationError("No marketplace API client configured")
        return self.api

    async def resolve_gas_strategy(
        self,
        strategy: GasStrategy | str = GasStrategy.AUTO,
        threshold: int = MIN_GAS_BALANCE_WEI,
    ) -> GasStrategy:
        """Pick and remember this agent's gas payment mode."""
        if self._chain is None or self.wallet_address is None:
            raise WalletNotInitializedError()
        self.gas_strategy = await select_gas_strategy(
            self._chain, self.wallet_address, strategy, threshold
        )
        return self.gas_strategy

    async def get_agent_score(self, agent: str | None = None) -> AgentStats:
        """Reputation stats for agent, or for this agent's own wallet."""
        address = agent or self.wallet_address
        if not address:
            raise ValidationError("No address. Pass agent or configure a wallet first.")
        if self._reputation is None:
            raise ValidationError("No reputation service configured")
        return await self._reputation.get_agent_stats(address)

    async def get_escrow(self, transaction_id: str) -> Escrow | None:
        return await self.escrow.get_escrow(transaction_id)


class SellerAgent(_Agent):
    """Seller side: poll for purchases, deliver, prove delivery on-chain."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._poller: PurchasePoller | None = None

    def poll_for_purchases(
        self,
        interval_seconds: float = 5.0,
        statuses: Sequence[str] = DEFAULT_STATUSES,
        limit: int = 50,
    ) -> AsyncIterator[Transaction]:
        """Stream new purchases where this agent is the seller."""
        self._poller = PurchasePoller(
            self._require_api(),
            interval_seconds=interval_seconds,
            statuses=statuses,
            limit=limit,
            role="seller",
        )
        return self._poller.purchases()

    def stop(self) -> None:
        if self._poller is not None:
            self._poller.stop()

    async def deliver(self, transaction_id: str, response_payload: Any) -> Transaction:
        return await self._require_api().deliver(transaction_id, response_payload)

    async def submit_delivery(
        self,
        transaction_id: str,
        proof_hash: str,
        response_payload: Any = _NO_PAYLOAD,
    ) -> str:
        """Prove delivery on-chain, then also deliver via the API if a payload is given."""
        tx_hash = await self.escrow.submit_delivery(transaction_id, proof_hash)
        if response_payload is not _NO_PAYLOAD:
            await self._require_api().deliver(transaction_id, response_payload)
        return tx_hash

    async def deliver_and_prove(self, transaction_id: str, response_payload: Any) -> str:
        """Hash the payload, submit the proof and deliver it in one step."""
        return await self.submit_delivery(
            transaction_id, ids.proof_hash(response_payload), response_payload
        )


class BuyerAgent(_Agent):
    """Buyer side: fund, then release, dispute or reclaim."""

    async def fund_and_verify(
        self,
        transaction_id: str,
        seller: str,
        amount: int,
        deadline: int,
        dispute_window: int = 0,
        abandonment_grace: int = 0,
        criteria: dict | str | None = None,
    ) -> tuple[str, str]:
        """Approve and fund an escrow, refusing jobs above the seller's ceiling.

        Raises:
            PaymentRequiredError: amount exceeds the seller's max job value.
        """
        escrow = self.escrow
        if self._reputation is not None:
            await self._reputation.require_job_value(seller, amount)

        criteria_hash = ids.criteria_hash(criteria) if criteria is not None else None
        approve_tx, fund_tx = await escrow.approve_and_fund(
            transaction_id,
            seller,
            amount,
            deadline,
            dispute_window=dispute_window,
            abandonment_grace=abandonment_grace,
            criteria_hash=criteria_hash,
        )
        logger.info("buyer.funded", transaction_id=transaction_id, seller=seller, amount=amount)
        return approve_tx, fund_tx

    async def confirm_and_release(self, transaction_id: str) -> str:
        return await self.escrow.accept_delivery(transaction_id)

    async def dispute(self, transaction_id: str) -> str:
        return await self.escrow.dispute_escrow(transaction_id)

    async def claim_abandoned(self, transaction_id: str) -> str:
        return await self.escrow.claim_abandoned(transaction_id)

    async def finalize(self, transaction_id: str) -> str:
        return await self.escrow.finalize_release(transaction_id)
