"""Read-only view of the score contract.

Scores and spending ceilings are computed on-chain; this service only reads
them. Ceilings are re-queried on every check, never cached, so a score change
between two calls is always observed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from web3 import Web3

from agent_escrow.domain.chain import FunctionCall
from agent_escrow.domain.enums import LedgerContract
from agent_escrow.domain.exceptions import PaymentRequiredError, ValidationError
from agent_escrow.domain.limits import platform_fee
from agent_escrow.domain.models import AgentStats
from agent_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from agent_escrow.domain.chain import ChainClient

logger = get_logger(__name__)


class ReputationService:
    """Score, stats and job-value ceiling lookups for agent addresses."""

    def __init__(self, chain: ChainClient, score_address: str) -> None:
        self._chain = chain
        self._score_address = score_address

    async def _read(self, function: str, agent: str) -> object:
        if not isinstance(agent, str) or not Web3.is_address(agent):
            raise ValidationError("agent must be an address", details={"agent": agent})
        return await self._chain.read(
            self._score_address, FunctionCall(LedgerContract.SCORE, function, (agent,))
        )

    async def get_score(self, agent: str) -> int:
        return int(await self._read("getScore", agent))

    async def get_agent_stats(self, agent: str) -> AgentStats:
        return AgentStats.from_ledger(await self._read("getAgentStats", agent))

    async def get_max_job_value(self, agent: str) -> int:
        """Largest settlement amount, in token units, agent may take on."""
        return int(await self._read("getMaxJobValue", agent))

    async def can_accept_job(self, agent: str, amount: int) -> bool:
        return amount <= await self.get_max_job_value(agent)

    async def require_job_value(self, agent: str, amount: int) -> int:
        """Raise PaymentRequiredError unless amount fits under agent's ceiling.

        Returns the ceiling that was checked.
        """
        ceiling = await self.get_max_job_value(agent)
        if amount > ceiling:
            logger.info("reputation.ceiling_exceeded", agent=agent, amount=amount, ceiling=ceiling)
            raise PaymentRequiredError(
                f"Job value {amount} exceeds the reputation ceiling {ceiling} for {agent}",
                payment_requirements={
                    "servicePrice": amount,
                    "platformFee": platform_fee(amount),
                    "maxJobValue": ceiling,
                    "shortfall": amount - ceiling,
                },
            )
        return ceiling
