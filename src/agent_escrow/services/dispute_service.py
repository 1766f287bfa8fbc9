"""Dispute resolution for escrows in DISPUTED status.

Two routes reach the same ledger transition:
    - resolve_dispute:   escrow contract, called directly by a resolver-role account
    - submit_resolution: resolver contract, which records reasoning and then
                         settles through the escrow contract

The split is validated locally before either call. Only the ledger decides
whether the caller actually holds the resolver role.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from agent_escrow.domain import ids
from agent_escrow.domain.chain import FunctionCall
from agent_escrow.domain.enums import DisputeOutcome, LedgerContract
from agent_escrow.domain.exceptions import LedgerCallError, ValidationError
from agent_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from agent_escrow.domain.chain import ChainClient

logger = get_logger(__name__)

# Fixed splits for the one-sided outcomes, as (buyer %, seller %).
_FIXED_SPLITS = {
    DisputeOutcome.BUYER_REFUND: (100, 0),
    DisputeOutcome.SELLER_PAID: (0, 100),
}


def validate_split(
    outcome: DisputeOutcome | int,
    buyer_percent: int,
    seller_percent: int,
) -> DisputeOutcome:
    """Check that a resolution's outcome and percentages agree.

    Raises:
        ValidationError: unknown or NONE outcome, negative parts, a sum other
            than 100, or a split that contradicts the outcome.
    """
    try:
        outcome = DisputeOutcome(outcome)
    except ValueError as exc:
        raise ValidationError(f"Unknown dispute outcome {outcome!r}") from exc
    if outcome is DisputeOutcome.NONE:
        raise ValidationError("Dispute outcome must not be NONE")

    details = {"outcome": outcome.name, "buyerPercent": buyer_percent, "sellerPercent": seller_percent}
    if buyer_percent < 0 or seller_percent < 0:
        raise ValidationError("Split percentages must not be negative", details=details)
    if buyer_percent + seller_percent != 100:
        raise ValidationError("Buyer and seller percentages must sum to 100", details=details)

    expected = _FIXED_SPLITS.get(outcome)
    if expected is not None and (buyer_percent, seller_percent) != expected:
        raise ValidationError(f"{outcome.name} requires a {expected[0]}/{expected[1]} split", details=details)
    if outcome is DisputeOutcome.SPLIT and 0 in (buyer_percent, seller_percent):
        raise ValidationError("SPLIT requires both parties to receive a share", details=details)
    return outcome


class DisputeResolverService:
    """Submits dispute resolutions as a resolver-role account."""

    def __init__(self, chain: ChainClient, escrow_address: str, resolver_address: str) -> None:
        self._chain = chain
        self._escrow_address = escrow_address
        self._resolver_address = resolver_address

    async def _submit(self, to: str, call: FunctionCall, transaction_id: str) -> str:
        try:
            tx_hash = await self._chain.send(to, call)
        except LedgerCallError as exc:
            logger.warning(
                "dispute.resolution_rejected",
                function=call.function,
                transaction_id=transaction_id,
                reason=exc.reason,
            )
            raise
        logger.info(
            "dispute.resolved",
            function=call.function,
            transaction_id=transaction_id,
            outcome=DisputeOutcome(call.args[1]).name,
            tx_hash=tx_hash,
        )
        return tx_hash

    async def resolve_dispute(
        self,
        transaction_id: str,
        outcome: DisputeOutcome | int,
        buyer_percent: int,
        seller_percent: int,
    ) -> str:
        outcome = validate_split(outcome, buyer_percent, seller_percent)
        call = FunctionCall(
            LedgerContract.ESCROW,
            "resolveDispute",
            (ids.escrow_id(transaction_id), int(outcome), buyer_percent, seller_percent),
        )
        return await self._submit(self._escrow_address, call, transaction_id)

    async def submit_resolution(
        self,
        transaction_id: str,
        outcome: DisputeOutcome | int,
        buyer_percent: int,
        seller_percent: int,
        reasoning: str = "",
    ) -> str:
        """Resolve through the resolver contract, recording reasoning on-chain."""
        outcome = validate_split(outcome, buyer_percent, seller_percent)
        call = FunctionCall(
            LedgerContract.RESOLVER,
            "submitResolution",
            (ids.escrow_id(transaction_id), int(outcome), buyer_percent, seller_percent, reasoning),
        )
        return await self._submit(self._resolver_address, call, transaction_id)
