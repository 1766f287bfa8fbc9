"""In-process ledger used for simulations and tests.

Mimics the escrow, score, resolver and ERC-20 contracts closely enough that
EscrowService and friends can run their full lifecycle without a node. Status
changes go through the same EscrowStateMachine the rest of the package uses;
time is a manual clock so windows and deadlines can be crossed instantly.

Usage:
    ledger = InMemoryLedger()
    ledger.mint(BUYER, 1_000_000_000)
    buyer_chain = ledger.connect(BUYER)
    svc = EscrowService(buyer_chain, ledger.escrow_address, ledger.token_address,
                        clock=ledger.now)
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from web3 import Web3

from agent_escrow.domain.enums import (
    DisputeOutcome,
    EscrowStatus,
    LedgerContract,
    LedgerFailure,
)
from agent_escrow.domain.exceptions import (
    InsufficientAllowanceError,
    InvalidStateTransitionError,
    LedgerCallError,
)
from agent_escrow.domain.limits import (
    PLATFORM_FEE_BPS,
    UNLIMITED_JOB_VALUE,
    abandonment_grace_in_bounds,
    dispute_window_in_bounds,
    effective_abandonment_grace,
    effective_dispute_window,
    platform_fee,
)
from agent_escrow.domain.models import ZERO_ADDRESS, ZERO_BYTES32
from agent_escrow.domain.state_machine import validate_transition
from agent_escrow.logging_config import get_logger

logger = get_logger(__name__)

_USDC = 10**6

# (score below, ceiling) pairs; at or above the last threshold the ceiling is lifted.
_JOB_VALUE_TIERS = (
    (10, 10 * _USDC),
    (25, 25 * _USDC),
    (50, 100 * _USDC),
    (75, 500 * _USDC),
    (100, 1_000 * _USDC),
)

_RESOLVER_ROLE = Web3.to_hex(Web3.keccak(text="RESOLVER_ROLE"))


def max_job_value_for(score: int) -> int:
    for threshold, ceiling in _JOB_VALUE_TIERS:
        if score < threshold:
            return ceiling
    return UNLIMITED_JOB_VALUE


class _Revert(Exception):
    """A contract-level require() failure."""


@dataclass
class _EscrowRecord:
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
    delivered_at: int = 0
    proof_hash: str = ZERO_BYTES32
    criteria_hash: str = ZERO_BYTES32

    def as_tuple(self) -> tuple:
        return (
            self.token,
            self.buyer,
            self.seller,
            self.locked_amount,
            self.platform_fee,
            int(self.status),
            self.created_at,
            self.deadline,
            self.dispute_window,
            self.abandonment_grace,
            self.delivered_at,
            self.proof_hash,
            self.criteria_hash,
        )


_EMPTY_ESCROW = (
    ZERO_ADDRESS, ZERO_ADDRESS, ZERO_ADDRESS, 0, 0, 0, 0, 0, 0, 0, 0, ZERO_BYTES32, ZERO_BYTES32,
)


@dataclass
class _Reputation:
    score: int = 0
    jobs: int = 0
    disputes_lost: int = 0
    abandoned: int = 0


class LedgerAccount:
    """A ChainClient view of an InMemoryLedger bound to one sender address."""

    def __init__(self, ledger: InMemoryLedger, address: str | None) -> None:
        self._ledger = ledger
        self._address = address

    @property
    def account_address(self) -> str | None:
        return self._address

    async def send(self, to: str, call: Any) -> str:
        if self._address is None:
            raise LedgerCallError(call.function, "read-only account cannot send")
        return await self._ledger.execute(self._address, to, call)

    async def read(self, address: str, call: Any) -> Any:
        return await self._ledger.view(address, call)

    async def get_balance(self, address: str) -> int:
        await asyncio.sleep(0)
        return self._ledger.native_balance(address)


class InMemoryLedger:
    """Escrow, score, resolver and token contracts held in memory."""

    def __init__(
        self,
        *,
        escrow_address: str = "0x" + "e5" * 20,
        score_address: str = "0x" + "5c" * 20,
        resolver_address: str = "0x" + "7e" * 20,
        token_address: str = "0x" + "0c" * 20,
        treasury_address: str = "0x" + "7a" * 20,
        start_time: int = 1_700_000_000,
    ) -> None:
        self.escrow_address = escrow_address
        self.score_address = score_address
        self.resolver_address = resolver_address
        self.token_address = token_address
        self.treasury_address = treasury_address
        self._addresses = {
            LedgerContract.ESCROW: escrow_address.lower(),
            LedgerContract.SCORE: score_address.lower(),
            LedgerContract.RESOLVER: resolver_address.lower(),
            LedgerContract.TOKEN: token_address.lower(),
        }
        self._time = start_time
        self._tx_counter = itertools.count(1)

        self._escrows: dict[str, _EscrowRecord] = {}
        self._reputation: dict[str, _Reputation] = {}
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self._native: dict[str, int] = {}
        self._resolvers: set[str] = set()

        self.offline = False
        self.sent: list[tuple[str, str, tuple]] = []

        self._mutators: dict[tuple[LedgerContract, str], Callable[..., Any]] = {
            (LedgerContract.ESCROW, "createEscrow"): self._create_escrow,
            (LedgerContract.ESCROW, "submitDelivery"): self._submit_delivery,
            (LedgerContract.ESCROW, "accept"): self._accept,
            (LedgerContract.ESCROW, "finalizeRelease"): self._finalize_release,
            (LedgerContract.ESCROW, "dispute"): self._dispute,
            (LedgerContract.ESCROW, "claimAbandoned"): self._claim_abandoned,
            (LedgerContract.ESCROW, "resolveDispute"): self._resolve_dispute,
            (LedgerContract.RESOLVER, "submitResolution"): self._submit_resolution,
            (LedgerContract.TOKEN, "approve"): self._approve,
        }
        self._views: dict[tuple[LedgerContract, str], Callable[..., Any]] = {
            (LedgerContract.ESCROW, "getEscrow"): self._get_escrow,
            (LedgerContract.ESCROW, "isDisputeWindowActive"): self._is_dispute_window_active,
            (LedgerContract.ESCROW, "canFinalize"): self._can_finalize,
            (LedgerContract.ESCROW, "canClaimAbandoned"): self._can_claim_abandoned,
            (LedgerContract.ESCROW, "PLATFORM_FEE_BPS"): lambda: PLATFORM_FEE_BPS,
            (LedgerContract.ESCROW, "isTokenSupported"): (
                lambda token: token.lower() == self._addresses[LedgerContract.TOKEN]
            ),
            (LedgerContract.SCORE, "getScore"): lambda agent: self._rep(agent).score,
            (LedgerContract.SCORE, "getMaxJobValue"): (
                lambda agent: max_job_value_for(self._rep(agent).score)
            ),
            (LedgerContract.SCORE, "getAgentStats"): self._agent_stats,
            (LedgerContract.RESOLVER, "RESOLVER_ROLE"): lambda: _RESOLVER_ROLE,
            (LedgerContract.TOKEN, "balanceOf"): self.token_balance,
            (LedgerContract.TOKEN, "allowance"): self.allowance,
        }

    # ------------------------------------------------------------------
    # Test / simulation controls
    # ------------------------------------------------------------------

    def now(self) -> int:
        return self._time

    def advance(self, seconds: int) -> int:
        self._time += seconds
        return self._time

    def connect(self, address: str | None) -> LedgerAccount:
        return LedgerAccount(self, address)

    def mint(self, address: str, amount: int) -> None:
        key = address.lower()
        self._balances[key] = self._balances.get(key, 0) + amount

    def set_native_balance(self, address: str, wei: int) -> None:
        self._native[address.lower()] = wei

    def grant_resolver(self, address: str) -> None:
        self._resolvers.add(address.lower())

    def seed_reputation(self, address: str, score: int = 0, jobs: int = 0) -> None:
        rep = self._rep(address)
        rep.score = score
        rep.jobs = jobs

    def token_balance(self, address: str) -> int:
        return self._balances.get(address.lower(), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner.lower(), spender.lower()), 0)

    def native_balance(self, address: str) -> int:
        return self._native.get(address.lower(), 0)

    # ------------------------------------------------------------------
    # ChainClient entry points
    # ------------------------------------------------------------------

    def _lookup(
        self,
        table: dict[tuple[LedgerContract, str], Callable[..., Any]],
        address: str,
        call: Any,
    ) -> Callable[..., Any]:
        if self.offline:
            raise LedgerCallError(call.function, "ledger unreachable", LedgerFailure.TRANSPORT)
        if self._addresses.get(call.contract) != address.lower():
            raise LedgerCallError(call.function, f"no {call.contract} contract at {address}")
        handler = table.get((call.contract, call.function))
        if handler is None:
            raise LedgerCallError(call.function, "function selector not recognized")
        return handler

    async def execute(self, sender: str, to: str, call: Any) -> str:
        await asyncio.sleep(0)
        handler = self._lookup(self._mutators, to, call)
        try:
            handler(sender, *call.args)
        except _Revert as exc:
            reason = str(exc)
            logger.debug("ledger.reverted", function=call.function, reason=reason)
            if "allowance" in reason:
                raise InsufficientAllowanceError(call.function, reason) from exc
            raise LedgerCallError(call.function, reason) from exc

        self.sent.append((sender, call.function, call.args))
        return Web3.to_hex(Web3.keccak(text=f"tx:{next(self._tx_counter)}"))

    async def view(self, address: str, call: Any) -> Any:
        await asyncio.sleep(0)
        handler = self._lookup(self._views, address, call)
        return handler(*call.args)

    # ------------------------------------------------------------------
    # Escrow contract
    # ------------------------------------------------------------------

    def _rep(self, address: str) -> _Reputation:
        return self._reputation.setdefault(address.lower(), _Reputation())

    def _record(self, escrow_id: str) -> _EscrowRecord:
        record = self._escrows.get(escrow_id.lower())
        if record is None:
            raise _Revert("Escrow not found")
        return record

    @staticmethod
    def _next_status(record: _EscrowRecord, event: str) -> EscrowStatus:
        try:
            return validate_transition(record.status, event)
        except InvalidStateTransitionError as exc:
            raise _Revert(f"Invalid status {record.status.name} for {event}") from exc

    @staticmethod
    def _only(sender: str, party: str, role: str) -> None:
        if sender.lower() != party.lower():
            raise _Revert(f"Only {role}")

    def _transfer(self, source: str, target: str, amount: int) -> None:
        src, dst = source.lower(), target.lower()
        if self._balances.get(src, 0) < amount:
            raise _Revert("ERC20: transfer amount exceeds balance")
        self._balances[src] = self._balances.get(src, 0) - amount
        self._balances[dst] = self._balances.get(dst, 0) + amount

    def _create_escrow(
        self,
        sender: str,
        escrow_id: str,
        seller: str,
        amount: int,
        token: str,
        deadline: int,
        dispute_window: int,
        abandonment_grace: int,
        criteria_hash: str,
    ) -> None:
        if escrow_id.lower() in self._escrows:
            raise _Revert("Escrow already exists")
        if amount <= 0:
            raise _Revert("Invalid amount")
        if deadline <= self._time:
            raise _Revert("Deadline must be in the future")
        if seller.lower() in (ZERO_ADDRESS, sender.lower()):
            raise _Revert("Invalid seller")
        if token.lower() != self._addresses[LedgerContract.TOKEN]:
            raise _Revert("Token not supported")
        if not dispute_window_in_bounds(dispute_window):
            raise _Revert("Invalid dispute window")
        if not abandonment_grace_in_bounds(abandonment_grace):
            raise _Revert("Invalid abandonment grace")

        fee = platform_fee(amount)
        total = amount + fee
        allowance_key = (sender.lower(), self.escrow_address.lower())
        if self._allowances.get(allowance_key, 0) < total:
            raise _Revert("ERC20: insufficient allowance")
        self._transfer(sender, self.escrow_address, total)
        self._allowances[allowance_key] -= total

        record = _EscrowRecord(
            token=token,
            buyer=sender,
            seller=seller,
            locked_amount=amount,
            platform_fee=fee,
            status=EscrowStatus.NONE,
            created_at=self._time,
            deadline=deadline,
            dispute_window=effective_dispute_window(dispute_window),
            abandonment_grace=effective_abandonment_grace(abandonment_grace),
            criteria_hash=criteria_hash,
        )
        record.status = self._next_status(record, "fund")
        self._escrows[escrow_id.lower()] = record

    def _submit_delivery(self, sender: str, escrow_id: str, proof: str) -> None:
        record = self._record(escrow_id)
        self._only(sender, record.seller, "seller")
        new_status = self._next_status(record, "submit_delivery")
        if self._time > record.deadline:
            raise _Revert("Deadline passed")
        record.status = new_status
        record.delivered_at = self._time
        record.proof_hash = proof

    def _release(self, record: _EscrowRecord, event: str) -> None:
        record.status = self._next_status(record, event)
        self._transfer(self.escrow_address, record.seller, record.locked_amount)
        self._transfer(self.escrow_address, self.treasury_address, record.platform_fee)
        for party in (record.buyer, record.seller):
            rep = self._rep(party)
            rep.score += 1
            rep.jobs += 1

    def _accept(self, sender: str, escrow_id: str) -> None:
        record = self._record(escrow_id)
        self._only(sender, record.buyer, "buyer")
        self._release(record, "accept")

    def _finalize_release(self, sender: str, escrow_id: str) -> None:
        record = self._record(escrow_id)
        self._next_status(record, "finalize_release")
        if self._time < record.delivered_at + record.dispute_window:
            raise _Revert("Dispute window still active")
        self._release(record, "finalize_release")

    def _dispute(self, sender: str, escrow_id: str) -> None:
        record = self._record(escrow_id)
        self._only(sender, record.buyer, "buyer")
        new_status = self._next_status(record, "dispute")
        if self._time >= record.delivered_at + record.dispute_window:
            raise _Revert("Dispute window closed")
        record.status = new_status

    def _claim_abandoned(self, sender: str, escrow_id: str) -> None:
        record = self._record(escrow_id)
        self._only(sender, record.buyer, "buyer")
        new_status = self._next_status(record, "claim_abandoned")
        if self._time < record.deadline + record.abandonment_grace:
            raise _Revert("Abandonment grace not elapsed")
        record.status = new_status
        self._transfer(self.escrow_address, record.buyer, record.locked_amount + record.platform_fee)
        rep = self._rep(record.seller)
        rep.abandoned += 1
        rep.score -= 5

    def _resolve_dispute(
        self,
        sender: str,
        escrow_id: str,
        outcome: int,
        buyer_percent: int,
        seller_percent: int,
    ) -> None:
        authorized = sender.lower() in self._resolvers or sender.lower() == self.resolver_address.lower()
        if not authorized:
            raise _Revert("AccessControl: missing resolver role")
        record = self._record(escrow_id)
        new_status = self._next_status(record, "resolve_dispute")
        if buyer_percent + seller_percent != 100:
            raise _Revert("Invalid split")
        outcome = DisputeOutcome(outcome)
        if outcome is DisputeOutcome.NONE:
            raise _Revert("Invalid outcome")

        record.status = new_status
        buyer_share = record.locked_amount * buyer_percent // 100
        self._transfer(self.escrow_address, record.buyer, buyer_share)
        self._transfer(self.escrow_address, record.seller, record.locked_amount - buyer_share)
        self._transfer(self.escrow_address, self.treasury_address, record.platform_fee)

        loser = {
            DisputeOutcome.BUYER_REFUND: record.seller,
            DisputeOutcome.SELLER_PAID: record.buyer,
        }.get(outcome)
        for party in (record.buyer, record.seller):
            rep = self._rep(party)
            rep.jobs += 1
            if loser is not None and party.lower() == loser.lower():
                rep.disputes_lost += 1
                rep.score -= 3

    def _submit_resolution(
        self,
        sender: str,
        escrow_id: str,
        outcome: int,
        buyer_percent: int,
        seller_percent: int,
        reasoning: str,
    ) -> None:
        if sender.lower() not in self._resolvers:
            raise _Revert("AccessControl: missing resolver role")
        self._resolve_dispute(self.resolver_address, escrow_id, outcome, buyer_percent, seller_percent)

    # --- Escrow views ---

    def _get_escrow(self, escrow_id: str) -> tuple:
        record = self._escrows.get(escrow_id.lower())
        return record.as_tuple() if record else _EMPTY_ESCROW

    def _is_dispute_window_active(self, escrow_id: str) -> bool:
        record = self._escrows.get(escrow_id.lower())
        return (
            record is not None
            and record.status is EscrowStatus.DELIVERED
            and self._time < record.delivered_at + record.dispute_window
        )

    def _can_finalize(self, escrow_id: str) -> bool:
        record = self._escrows.get(escrow_id.lower())
        return (
            record is not None
            and record.status is EscrowStatus.DELIVERED
            and self._time >= record.delivered_at + record.dispute_window
        )

    def _can_claim_abandoned(self, escrow_id: str) -> bool:
        record = self._escrows.get(escrow_id.lower())
        return (
            record is not None
            and record.status is EscrowStatus.FUNDED
            and self._time >= record.deadline + record.abandonment_grace
        )

    # ------------------------------------------------------------------
    # Score / token contracts
    # ------------------------------------------------------------------

    def _agent_stats(self, agent: str) -> tuple:
        rep = self._rep(agent)
        return (rep.score, rep.jobs, rep.disputes_lost, rep.abandoned, max_job_value_for(rep.score))

    def _approve(self, sender: str, spender: str, amount: int) -> None:
        self._allowances[(sender.lower(), spender.lower())] = amount
