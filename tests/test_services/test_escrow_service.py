"""Tests for EscrowService against the in-memory ledger.

Covers:
    - Fee arithmetic
    - Local validation (no ledger call on bad input)
    - Funding, allowance and double-funding rejections
    - Delivery / dispute / finalize / abandonment timing rules
    - End-to-end happy path and abandonment
"""

from __future__ import annotations

import pytest
from conftest import BUYER, SELLER, USDC

from agent_escrow.domain.chain import FunctionCall
from agent_escrow.domain.enums import EscrowStatus, LedgerContract, LedgerFailure
from agent_escrow.domain.exceptions import (
    InsufficientAllowanceError,
    LedgerCallError,
    ValidationError,
)
from agent_escrow.domain.ids import escrow_id, proof_hash
from agent_escrow.domain.limits import DEFAULT_ABANDONMENT_GRACE, DEFAULT_DISPUTE_WINDOW
from agent_escrow.domain.models import ZERO_ADDRESS
from agent_escrow.services.escrow_service import EscrowService

TX = "tx-service-001"
PROOF = proof_hash({"result": "done"})
HOUR = 3600


async def _fund(svc: EscrowService, ledger, amount: int = 10 * USDC, **kwargs) -> None:
    kwargs.setdefault("deadline", ledger.now() + HOUR)
    await svc.approve_and_fund(TX, SELLER, amount, **kwargs)


class TestFees:
    def test_two_percent(self) -> None:
        assert EscrowService.platform_fee(10 * USDC) == 200_000
        assert EscrowService.total_with_fee(10 * USDC) == 10_200_000

    def test_fee_rounds_up(self) -> None:
        assert EscrowService.platform_fee(1) == 1
        assert EscrowService.platform_fee(50) == 1
        assert EscrowService.platform_fee(51) == 2

    def test_escrow_id_passthrough(self) -> None:
        assert EscrowService.escrow_id(TX) == escrow_id(TX)


class TestFundingValidation:
    """Bad input is rejected locally; nothing reaches the ledger."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1, True, 1.5])
    async def test_bad_amount(self, ledger, buyer_escrow, amount) -> None:
        with pytest.raises(ValidationError):
            await buyer_escrow.approve_and_fund(TX, SELLER, amount, ledger.now() + HOUR)
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_deadline_must_be_in_future(self, ledger, buyer_escrow) -> None:
        with pytest.raises(ValidationError):
            await buyer_escrow.fund_escrow(TX, SELLER, USDC, ledger.now())
        assert ledger.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("window", [1, 299, 86_401])
    async def test_dispute_window_bounds(self, ledger, buyer_escrow, window) -> None:
        with pytest.raises(ValidationError):
            await _fund(buyer_escrow, ledger, dispute_window=window)
        assert ledger.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("grace", [3_599, 30 * 86_400 + 1])
    async def test_abandonment_grace_bounds(self, ledger, buyer_escrow, grace) -> None:
        with pytest.raises(ValidationError):
            await _fund(buyer_escrow, ledger, abandonment_grace=grace)
        assert ledger.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seller", ["not-an-address", ZERO_ADDRESS, "0x1234"])
    async def test_bad_seller(self, ledger, buyer_escrow, seller) -> None:
        with pytest.raises(ValidationError):
            await buyer_escrow.approve_and_fund(TX, seller, USDC, ledger.now() + HOUR)
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_bad_criteria_hash(self, ledger, buyer_escrow) -> None:
        with pytest.raises(ValidationError):
            await _fund(buyer_escrow, ledger, criteria_hash="0xdeadbeef")
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_empty_transaction_id(self, ledger, buyer_escrow) -> None:
        with pytest.raises(ValidationError):
            await buyer_escrow.approve_and_fund("", SELLER, USDC, ledger.now() + HOUR)
        assert ledger.sent == []


class TestFunding:
    @pytest.mark.asyncio
    async def test_fund_locks_amount_plus_fee(self, ledger, buyer_escrow) -> None:
        before = ledger.token_balance(BUYER)
        await _fund(buyer_escrow, ledger)

        escrow = await buyer_escrow.get_escrow(TX)
        assert escrow.status is EscrowStatus.FUNDED
        assert escrow.buyer == BUYER
        assert escrow.seller == SELLER
        assert escrow.locked_amount == 10 * USDC
        assert escrow.platform_fee == 200_000
        assert escrow.criteria_hash is None
        assert before - ledger.token_balance(BUYER) == 10_200_000
        assert ledger.token_balance(ledger.escrow_address) == 10_200_000

    @pytest.mark.asyncio
    async def test_zero_windows_select_defaults(self, ledger, buyer_escrow) -> None:
        await _fund(buyer_escrow, ledger, dispute_window=0, abandonment_grace=0)
        escrow = await buyer_escrow.get_escrow(TX)
        assert escrow.dispute_window == DEFAULT_DISPUTE_WINDOW
        assert escrow.abandonment_grace == DEFAULT_ABANDONMENT_GRACE

    @pytest.mark.asyncio
    async def test_criteria_hash_is_recorded(self, ledger, buyer_escrow) -> None:
        commitment = EscrowService.criteria_hash({"type": "object"})
        await _fund(buyer_escrow, ledger, criteria_hash=commitment)
        escrow = await buyer_escrow.get_escrow(TX)
        assert escrow.criteria_hash == commitment

    @pytest.mark.asyncio
    async def test_under_approval_is_allowance_error(self, ledger, buyer_escrow) -> None:
        # Approving only the bare amount leaves the fee uncovered.
        approve = FunctionCall(LedgerContract.TOKEN, "approve", (ledger.escrow_address, 10 * USDC))
        await ledger.connect(BUYER).send(ledger.token_address, approve)
        with pytest.raises(InsufficientAllowanceError) as exc_info:
            await buyer_escrow.fund_escrow(TX, SELLER, 10 * USDC, ledger.now() + HOUR)

        assert exc_info.value.failure is LedgerFailure.INSUFFICIENT_ALLOWANCE
        assert exc_info.value.is_guard_rejection
        assert await buyer_escrow.get_escrow(TX) is None

    @pytest.mark.asyncio
    async def test_cannot_fund_twice(self, ledger, buyer_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        with pytest.raises(LedgerCallError, match="already exists"):
            await _fund(buyer_escrow, ledger)

    @pytest.mark.asyncio
    async def test_unknown_escrow_reads_as_none(self, buyer_escrow) -> None:
        assert await buyer_escrow.get_escrow("never-funded") is None

    @pytest.mark.asyncio
    async def test_transport_failure_is_distinguishable(self, ledger, buyer_escrow) -> None:
        ledger.offline = True
        with pytest.raises(LedgerCallError) as exc_info:
            await _fund(buyer_escrow, ledger)
        assert exc_info.value.is_transport_failure
        assert not exc_info.value.is_guard_rejection


class TestDelivery:
    @pytest.mark.asyncio
    async def test_seller_delivers(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)

        escrow = await seller_escrow.get_escrow(TX)
        assert escrow.status is EscrowStatus.DELIVERED
        assert escrow.delivered_at == ledger.now()
        assert escrow.proof_hash == PROOF

    @pytest.mark.asyncio
    async def test_delivery_at_deadline_is_accepted(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        ledger.advance(HOUR)
        await seller_escrow.submit_delivery(TX, PROOF)

    @pytest.mark.asyncio
    async def test_delivery_after_deadline_rejected(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        ledger.advance(HOUR + 1)
        with pytest.raises(LedgerCallError, match="Deadline passed"):
            await seller_escrow.submit_delivery(TX, PROOF)

    @pytest.mark.asyncio
    async def test_only_seller_may_deliver(self, ledger, buyer_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        with pytest.raises(LedgerCallError, match="Only seller"):
            await buyer_escrow.submit_delivery(TX, PROOF)

    @pytest.mark.asyncio
    async def test_bad_proof_hash_rejected_locally(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        sent = len(ledger.sent)
        with pytest.raises(ValidationError):
            await seller_escrow.submit_delivery(TX, "proof")
        assert len(ledger.sent) == sent


class TestDisputeWindow:
    @pytest.mark.asyncio
    async def test_window_timing(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger, dispute_window=HOUR)
        await seller_escrow.submit_delivery(TX, PROOF)

        assert await buyer_escrow.is_dispute_window_active(TX)
        assert not await buyer_escrow.can_finalize(TX)

        ledger.advance(HOUR - 1)
        assert await buyer_escrow.is_dispute_window_active(TX)
        assert not await buyer_escrow.can_finalize(TX)

        ledger.advance(1)
        assert not await buyer_escrow.is_dispute_window_active(TX)
        assert await buyer_escrow.can_finalize(TX)

    @pytest.mark.asyncio
    async def test_dispute_inside_window(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)
        ledger.advance(DEFAULT_DISPUTE_WINDOW - 1)
        await buyer_escrow.dispute_escrow(TX)
        assert (await buyer_escrow.get_escrow(TX)).status is EscrowStatus.DISPUTED
        assert not await buyer_escrow.can_finalize(TX)

    @pytest.mark.asyncio
    async def test_dispute_after_window_rejected(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)
        ledger.advance(DEFAULT_DISPUTE_WINDOW)
        with pytest.raises(LedgerCallError, match="Dispute window closed"):
            await buyer_escrow.dispute_escrow(TX)

    @pytest.mark.asyncio
    async def test_finalize_before_window_rejected(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)
        with pytest.raises(LedgerCallError):
            await buyer_escrow.finalize_release(TX)

    @pytest.mark.asyncio
    async def test_anyone_may_finalize_after_window(
        self, ledger, buyer_escrow, seller_escrow, stranger_escrow
    ) -> None:
        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)
        ledger.advance(DEFAULT_DISPUTE_WINDOW)

        await stranger_escrow.finalize_release(TX)

        assert (await buyer_escrow.get_escrow(TX)).status is EscrowStatus.RELEASED
        assert ledger.token_balance(SELLER) == 10 * USDC

    @pytest.mark.asyncio
    async def test_advisory_check_does_not_hide_ledger_rejection(
        self, ledger, buyer_escrow, seller_escrow
    ) -> None:
        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)
        ledger.advance(DEFAULT_DISPUTE_WINDOW)
        assert await buyer_escrow.can_finalize(TX)

        await buyer_escrow.finalize_release(TX)
        with pytest.raises(LedgerCallError):
            await buyer_escrow.finalize_release(TX)


class TestAbandonment:
    @pytest.mark.asyncio
    async def test_claim_timing_and_refund(self, ledger, buyer_escrow) -> None:
        before = ledger.token_balance(BUYER)
        await _fund(buyer_escrow, ledger, abandonment_grace=HOUR)

        ledger.advance(2 * HOUR - 1)
        assert not await buyer_escrow.can_claim_abandoned(TX)
        with pytest.raises(LedgerCallError):
            await buyer_escrow.claim_abandoned(TX)

        ledger.advance(1)
        assert await buyer_escrow.can_claim_abandoned(TX)
        await buyer_escrow.claim_abandoned(TX)

        assert (await buyer_escrow.get_escrow(TX)).status is EscrowStatus.ABANDONED
        assert ledger.token_balance(BUYER) == before

    @pytest.mark.asyncio
    async def test_cannot_abandon_delivered_escrow(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger, abandonment_grace=HOUR)
        await seller_escrow.submit_delivery(TX, PROOF)
        ledger.advance(10 * HOUR)
        assert not await buyer_escrow.can_claim_abandoned(TX)
        with pytest.raises(LedgerCallError):
            await buyer_escrow.claim_abandoned(TX)

    @pytest.mark.asyncio
    async def test_only_buyer_may_claim(self, ledger, buyer_escrow, stranger_escrow) -> None:
        await _fund(buyer_escrow, ledger, abandonment_grace=HOUR)
        ledger.advance(3 * HOUR)
        with pytest.raises(LedgerCallError, match="Only buyer"):
            await stranger_escrow.claim_abandoned(TX)


class TestAllowedActions:
    @pytest.mark.asyncio
    async def test_unfunded(self, buyer_escrow) -> None:
        assert await buyer_escrow.get_allowed_actions(TX) == ["fund"]

    @pytest.mark.asyncio
    async def test_funded_hides_ledger_only_refund(self, ledger, buyer_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        assert set(await buyer_escrow.get_allowed_actions(TX)) == {"submit_delivery", "claim_abandoned"}

    @pytest.mark.asyncio
    async def test_terminal(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)
        await buyer_escrow.accept_delivery(TX)
        assert await buyer_escrow.get_allowed_actions(TX) == []


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_happy_path(self, ledger, buyer_escrow, seller_escrow) -> None:
        buyer_start = ledger.token_balance(BUYER)

        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)
        await buyer_escrow.accept_delivery(TX)

        escrow = await buyer_escrow.get_escrow(TX)
        assert escrow.status is EscrowStatus.RELEASED
        assert ledger.token_balance(SELLER) == 10 * USDC
        assert ledger.token_balance(ledger.treasury_address) == 200_000
        assert ledger.token_balance(ledger.escrow_address) == 0
        assert buyer_start - ledger.token_balance(BUYER) == 10_200_000

    @pytest.mark.asyncio
    async def test_terminal_escrow_rejects_everything(self, ledger, buyer_escrow, seller_escrow) -> None:
        await _fund(buyer_escrow, ledger)
        await seller_escrow.submit_delivery(TX, PROOF)
        await buyer_escrow.accept_delivery(TX)

        for call in (
            buyer_escrow.accept_delivery(TX),
            buyer_escrow.dispute_escrow(TX),
            buyer_escrow.claim_abandoned(TX),
            seller_escrow.submit_delivery(TX, PROOF),
        ):
            with pytest.raises(LedgerCallError):
                await call
