"""Escrow Service: builds and submits escrow lifecycle calls.

This is the application layer that coordinates between:
    - IdDerivation (transaction id -> bytes32 escrow id)
    - Domain state machine (advisory transition guard)
    - ChainClient (the ledger, which is the authoritative guard)

Every write validates its inputs locally and raises ValidationError before
any chain call is made. A ledger rejection is logged and re-raised as the
LedgerCallError the backend produced; nothing here retries.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from web3 import Web3

from agent_escrow.domain import ids, limits
from agent_escrow.domain.chain import FunctionCall
from agent_escrow.domain.enums import LedgerContract
from agent_escrow.domain.exceptions import LedgerCallError, ValidationError
from agent_escrow.domain.models import ZERO_BYTES32, Escrow, is_zero_address
from agent_escrow.domain.state_machine import EscrowStateMachine
from agent_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from agent_escrow.domain.chain import ChainClient

logger = get_logger(__name__)

# Events the state machine knows about that no client call can trigger.
_LEDGER_ONLY_EVENTS = frozenset({"refund"})


def _require_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer", details={name: value})
    return value


class EscrowService:
    """Manages the escrow lifecycle for one account against one escrow contract."""

    def __init__(
        self,
        chain: ChainClient,
        escrow_address: str,
        token_address: str,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._chain = chain
        self._escrow_address = escrow_address
        self._token_address = token_address
        self._clock = clock or (lambda: int(time.time()))

    @property
    def escrow_address(self) -> str:
        return self._escrow_address

    @property
    def token_address(self) -> str:
        return self._token_address

    # ------------------------------------------------------------------
    # Pure helpers
    # ------------------------------------------------------------------

    @staticmethod
    def escrow_id(transaction_id: str) -> str:
        return ids.escrow_id(transaction_id)

    @staticmethod
    def criteria_hash(criteria: dict | str) -> str:
        return ids.criteria_hash(criteria)

    @staticmethod
    def platform_fee(amount: int) -> int:
        return limits.platform_fee(amount)

    @staticmethod
    def total_with_fee(amount: int) -> int:
        return limits.total_with_fee(amount)

    # ------------------------------------------------------------------
    # Ledger plumbing
    # ------------------------------------------------------------------

    async def _send(self, function: str, *args: Any, transaction_id: str | None = None) -> str:
        call = FunctionCall(LedgerContract.ESCROW, function, args)
        try:
            tx_hash = await self._chain.send(self._escrow_address, call)
        except LedgerCallError as exc:
            logger.warning(
                "escrow.call_rejected",
                function=function,
                transaction_id=transaction_id,
                failure=str(exc.failure),
                reason=exc.reason,
            )
            raise
        logger.info("escrow.call_sent", function=function, transaction_id=transaction_id, tx_hash=tx_hash)
        return tx_hash

    async def _read(self, function: str, *args: Any) -> Any:
        return await self._chain.read(
            self._escrow_address, FunctionCall(LedgerContract.ESCROW, function, args)
        )

    # ------------------------------------------------------------------
    # Funding
    # ------------------------------------------------------------------

    async def approve_token(self, amount: int) -> str:
        """Approve the escrow contract to pull amount plus the platform fee."""
        _require_positive_int("amount", amount)
        total = limits.total_with_fee(amount)
        call = FunctionCall(LedgerContract.TOKEN, "approve", (self._escrow_address, total))
        tx_hash = await self._chain.send(self._token_address, call)
        logger.info("escrow.token_approved", amount=amount, total=total, tx_hash=tx_hash)
        return tx_hash

    def _validate_funding(
        self,
        seller: str,
        amount: int,
        deadline: int,
        dispute_window: int,
        abandonment_grace: int,
        criteria_hash: str | None,
    ) -> str:
        if not isinstance(seller, str) or not Web3.is_address(seller) or is_zero_address(seller):
            raise ValidationError("seller must be a non-zero address", details={"seller": seller})
        _require_positive_int("amount", amount)
        now = self._clock()
        if isinstance(deadline, bool) or not isinstance(deadline, int) or deadline <= now:
            raise ValidationError(
                "deadline must be a unix timestamp in the future",
                details={"deadline": deadline, "now": now},
            )
        if not limits.dispute_window_in_bounds(dispute_window):
            raise ValidationError(
                f"dispute_window must be 0 or between {limits.MIN_DISPUTE_WINDOW} "
                f"and {limits.MAX_DISPUTE_WINDOW} seconds",
                details={"dispute_window": dispute_window},
            )
        if not limits.abandonment_grace_in_bounds(abandonment_grace):
            raise ValidationError(
                f"abandonment_grace must be 0 or between {limits.MIN_ABANDONMENT_GRACE} "
                f"and {limits.MAX_ABANDONMENT_GRACE} seconds",
                details={"abandonment_grace": abandonment_grace},
            )
        if criteria_hash is None:
            return ZERO_BYTES32
        if not ids.is_bytes32(criteria_hash):
            raise ValidationError(
                "criteria_hash must be a 0x-prefixed 32-byte hex string",
                details={"criteria_hash": criteria_hash},
            )
        return criteria_hash

    async def fund_escrow(
        self,
        transaction_id: str,
        seller: str,
        amount: int,
        deadline: int,
        dispute_window: int = 0,
        abandonment_grace: int = 0,
        criteria_hash: str | None = None,
    ) -> str:
        """Create and fund the escrow for transaction_id.

        The token allowance must already cover total_with_fee(amount); a short
        allowance surfaces as InsufficientAllowanceError from the ledger.
        A dispute_window or abandonment_grace of 0 selects the ledger default.
        """
        escrow_id = ids.escrow_id(transaction_id)
        criteria = self._validate_funding(
            seller, amount, deadline, dispute_window, abandonment_grace, criteria_hash
        )
        tx_hash = await self._send(
            "createEscrow",
            escrow_id,
            seller,
            amount,
            self._token_address,
            deadline,
            dispute_window,
            abandonment_grace,
            criteria,
            transaction_id=transaction_id,
        )
        logger.info(
            "escrow.funded",
            transaction_id=transaction_id,
            escrow_id=escrow_id,
            amount=amount,
            fee=limits.platform_fee(amount),
        )
        return tx_hash

    async def approve_and_fund(
        self,
        transaction_id: str,
        seller: str,
        amount: int,
        deadline: int,
        dispute_window: int = 0,
        abandonment_grace: int = 0,
        criteria_hash: str | None = None,
    ) -> tuple[str, str]:
        """Approve the token then fund. Returns (approve_tx, fund_tx)."""
        ids.escrow_id(transaction_id)
        self._validate_funding(
            seller, amount, deadline, dispute_window, abandonment_grace, criteria_hash
        )
        approve_tx = await self.approve_token(amount)
        fund_tx = await self.fund_escrow(
            transaction_id,
            seller,
            amount,
            deadline,
            dispute_window=dispute_window,
            abandonment_grace=abandonment_grace,
            criteria_hash=criteria_hash,
        )
        return approve_tx, fund_tx

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def submit_delivery(self, transaction_id: str, proof_hash: str) -> str:
        """Seller: record delivery. Must happen on or before the deadline."""
        escrow_id = ids.escrow_id(transaction_id)
        if not ids.is_bytes32(proof_hash):
            raise ValidationError(
                "proof_hash must be a 0x-prefixed 32-byte hex string",
                details={"proof_hash": proof_hash},
            )
        return await self._send("submitDelivery", escrow_id, proof_hash, transaction_id=transaction_id)

    async def accept_delivery(self, transaction_id: str) -> str:
        """Buyer: accept the delivery and release funds immediately."""
        escrow_id = ids.escrow_id(transaction_id)
        return await self._send("accept", escrow_id, transaction_id=transaction_id)

    async def finalize_release(self, transaction_id: str) -> str:
        """Anyone: release funds once the dispute window has closed undisputed."""
        escrow_id = ids.escrow_id(transaction_id)
        return await self._send("finalizeRelease", escrow_id, transaction_id=transaction_id)

    async def dispute_escrow(self, transaction_id: str) -> str:
        """Buyer: open a dispute while the dispute window is active."""
        escrow_id = ids.escrow_id(transaction_id)
        return await self._send("dispute", escrow_id, transaction_id=transaction_id)

    async def claim_abandoned(self, transaction_id: str) -> str:
        """Buyer: reclaim funds from an escrow that was never delivered."""
        escrow_id = ids.escrow_id(transaction_id)
        return await self._send("claimAbandoned", escrow_id, transaction_id=transaction_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_escrow(self, transaction_id: str) -> Escrow | None:
        escrow_id = ids.escrow_id(transaction_id)
        record = await self._read("getEscrow", escrow_id)
        return Escrow.from_ledger(escrow_id, record)

    async def is_dispute_window_active(self, transaction_id: str) -> bool:
        return bool(await self._read("isDisputeWindowActive", ids.escrow_id(transaction_id)))

    async def can_finalize(self, transaction_id: str) -> bool:
        return bool(await self._read("canFinalize", ids.escrow_id(transaction_id)))

    async def can_claim_abandoned(self, transaction_id: str) -> bool:
        return bool(await self._read("canClaimAbandoned", ids.escrow_id(transaction_id)))

    async def get_allowed_actions(self, transaction_id: str) -> list[str]:
        """State-machine events that may fire from the escrow's current status.

        Advisory only: timing rules are not applied here, and the ledger may
        still reject a listed action.
        """
        escrow = await self.get_escrow(transaction_id)
        sm = EscrowStateMachine(escrow.status if escrow else "NONE")
        return [event for event in sm.get_allowed_events() if event not in _LEDGER_ONLY_EVENTS]
