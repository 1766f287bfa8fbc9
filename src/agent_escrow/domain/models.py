"""Ledger records as plain, immutable domain objects.

Escrow and AgentStats are decoded from the raw tuples the escrow and score
contracts return; nothing here talks to a chain.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from agent_escrow.domain.enums import EscrowStatus

# Canonical zero values: 20-byte address and 32-byte hash.
ZERO_ADDRESS = "0x" + "00" * 20
ZERO_BYTES32 = "0x" + "00" * 32


def _hash_or_none(value: bytes | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes | bytearray):
        value = "0x" + bytes(value).hex()
    value = value.lower()
    if not value.startswith("0x"):
        value = "0x" + value
    return None if value == ZERO_BYTES32 else value


def is_zero_address(address: str | None) -> bool:
    return not address or address.lower() == ZERO_ADDRESS


@dataclass(frozen=True)
class Escrow:
    """An escrow record as stored by the escrow contract.

    Attributes:
        escrow_id: bytes32 id derived from the platform transaction id.
        token: Settlement token address.
        buyer: Buyer address (never the zero address for a live record).
        seller: Seller address.
        locked_amount: Settlement amount, in smallest token units.
        platform_fee: Fee charged on top of locked_amount at funding time.
        status: Current lifecycle status.
        created_at: Unix seconds of the funding call.
        deadline: Unix seconds by which delivery must be submitted.
        dispute_window: Seconds after delivery during which the buyer may dispute.
        abandonment_grace: Seconds after the deadline before the buyer may reclaim.
        delivered_at: Unix seconds of delivery, 0 if never delivered.
        proof_hash: Delivery proof hash, None if never delivered.
        criteria_hash: Success-criteria commitment, None if none was given.
    """

    escrow_id: str
    token: str
    buyer: str
    seller: str
    locked_amount: int
    platform_fee: int
    status: EscrowStatus
    created_at: int
    deadline: int
    dispute_window: int
    abandonment_grace: int
    delivered_at: int
    proof_hash: str | None
    criteria_hash: str | None

    @classmethod
    def from_ledger(cls, escrow_id: str, record: Sequence) -> Escrow | None:
        """Decode a getEscrow() result tuple.

        Returns None when the buyer is the zero address, which is how the
        contract reports an escrow that was never created.
        """
        (
            token,
            buyer,
            seller,
            locked_amount,
            platform_fee,
            status,
            created_at,
            deadline,
            dispute_window,
            abandonment_grace,
            delivered_at,
            proof_hash,
            criteria_hash,
        ) = record

        if is_zero_address(buyer):
            return None

        return cls(
            escrow_id=escrow_id,
            token=token,
            buyer=buyer,
            seller=seller,
            locked_amount=int(locked_amount),
            platform_fee=int(platform_fee),
            status=EscrowStatus(int(status)),
            created_at=int(created_at),
            deadline=int(deadline),
            dispute_window=int(dispute_window),
            abandonment_grace=int(abandonment_grace),
            delivered_at=int(delivered_at),
            proof_hash=_hash_or_none(proof_hash),
            criteria_hash=_hash_or_none(criteria_hash),
        )

    @property
    def total_locked(self) -> int:
        return self.locked_amount + self.platform_fee

    @property
    def dispute_window_ends_at(self) -> int | None:
        if not self.delivered_at:
            return None
        return self.delivered_at + self.dispute_window

    @property
    def abandonable_at(self) -> int:
        return self.deadline + self.abandonment_grace


@dataclass(frozen=True)
class AgentStats:
    """Reputation figures for one agent, as kept by the score contract."""

    score: int
    total_jobs: int
    disputes_lost: int
    jobs_abandoned: int
    max_job_value: int

    @classmethod
    def from_ledger(cls, record: Sequence) -> AgentStats:
        score, jobs, disputes_lost, abandoned, max_job_value = record
        return cls(
            score=int(score),
            total_jobs=int(jobs),
            disputes_lost=int(disputes_lost),
            jobs_abandoned=int(abandoned),
            max_job_value=int(max_job_value),
        )
