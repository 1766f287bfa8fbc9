#!/usr/bin/env python3
"""Agent Escrow end-to-end simulation.

Runs three scenarios between a BuyerAgent and a SellerAgent against the
in-memory ledger. No node, no API, no network.

    Scenario 1: Happy Path
        - Buyer funds an escrow, seller discovers it via the poller
        - Seller delivers and proves delivery -> buyer accepts -> RELEASED

    Scenario 2: Abandonment
        - Buyer funds, seller never delivers
        - Deadline + abandonment grace passes -> buyer reclaims -> ABANDONED

    Scenario 3: Dispute
        - Buyer funds with JSON Schema success criteria
        - Seller delivers something that fails them -> buyer disputes
        - Resolver adjudicates against the committed criteria -> RESOLVED

Usage:
    uv run python simulation.py
    uv run python simulation.py --scenario 3
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from agent_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from agent_escrow.domain import ids  # noqa: E402
from agent_escrow.infrastructure.memory_ledger import InMemoryLedger  # noqa: E402
from agent_escrow.schemas.marketplace import Transaction  # noqa: E402
from agent_escrow.services import (  # noqa: E402
    BuyerAgent,
    DisputeResolverService,
    EscrowService,
    ReputationService,
    SellerAgent,
)
from agent_escrow.verifiers import CriteriaAdjudicator  # noqa: E402

BUYER = "0x" + "b1" * 20
SELLER = "0x" + "5e" * 20
RESOLVER = "0x" + "4e" * 20
USDC = 10**6


class SimulatedMarketplace:
    """Stands in for the marketplace API: a purchase list plus delivery records."""

    def __init__(self) -> None:
        self.transactions: dict[str, Transaction] = {}
        self.deliveries: dict[str, Any] = {}

    def purchase(self, transaction_id: str, amount: float) -> Transaction:
        tx = Transaction(id=transaction_id, buyer_id="buyer", seller_id="seller", amount=amount,
                         currency="USDC", status="escrowed")
        self.transactions[transaction_id] = tx
        return tx

    async def list_transactions(self, role: str = "seller", status: str | None = None,
                                limit: int = 50) -> list[Transaction]:
        return [tx for tx in self.transactions.values() if status is None or tx.status == status][:limit]

    async def deliver(self, transaction_id: str, response_payload: Any) -> Transaction:
        self.deliveries[transaction_id] = response_payload
        tx = self.transactions[transaction_id].model_copy(update={"status": "delivered"})
        self.transactions[transaction_id] = tx
        return tx


def build_world() -> tuple[InMemoryLedger, SimulatedMarketplace, BuyerAgent, SellerAgent]:
    ledger = InMemoryLedger()
    ledger.mint(BUYER, 1_000 * USDC)
    market = SimulatedMarketplace()

    def agent(cls: type, address: str) -> Any:
        chain = ledger.connect(address)
        return cls(
            api=market,
            escrow=EscrowService(chain, ledger.escrow_address, ledger.token_address, clock=ledger.now),
            reputation=ReputationService(chain, ledger.score_address),
            chain=chain,
        )

    return ledger, market, agent(BuyerAgent, BUYER), agent(SellerAgent, SELLER)


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_escrow(agent: BuyerAgent | SellerAgent, transaction_id: str) -> None:
    escrow = await agent.get_escrow(transaction_id)
    if escrow is None:
        print("  (no escrow)")
        return
    print(f"  Escrow {escrow.escrow_id[:18]}...  status={escrow.status.name}  "
          f"locked={escrow.locked_amount / USDC:.2f}  fee={escrow.platform_fee / USDC:.2f}")


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 1: Happy Path: fund, deliver, accept")
    print("=" * 70)

    ledger, market, buyer, seller = build_world()
    tx_id = "tx-happy-001"

    section("Step 1: Buyer purchases and funds 8 USDC")
    market.purchase(tx_id, 8.0)
    await buyer.fund_and_verify(tx_id, SELLER, 8 * USDC, deadline=ledger.now() + 3600)
    await print_escrow(buyer, tx_id)

    section("Step 2: Seller discovers the purchase")
    purchases = seller.poll_for_purchases(interval_seconds=0)
    tx = await anext(purchases)
    seller.stop()
    await purchases.aclose()
    print(f"  Found transaction {tx.id} ({tx.status})")

    section("Step 3: Seller delivers and proves delivery")
    await seller.deliver_and_prove(tx.id, {"result": "Code review completed"})
    await print_escrow(seller, tx_id)

    section("Step 4: Buyer accepts")
    await buyer.confirm_and_release(tx_id)
    await print_escrow(buyer, tx_id)
    stats = await seller.get_agent_score()
    print(f"  Seller score={stats.score} jobs={stats.total_jobs} "
          f"balance={ledger.token_balance(SELLER) / USDC:.2f} USDC")


# ===========================================================================
# Scenario 2: Abandonment
# ===========================================================================
async def scenario_2_abandonment() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 2: Abandonment: seller never delivers")
    print("=" * 70)

    ledger, market, buyer, seller = build_world()
    tx_id = "tx-abandon-001"

    section("Step 1: Buyer funds with a 1h deadline and 1h grace")
    market.purchase(tx_id, 5.0)
    await buyer.fund_and_verify(tx_id, SELLER, 5 * USDC, deadline=ledger.now() + 3600,
                                abandonment_grace=3600)
    balance_after_funding = ledger.token_balance(BUYER)

    section("Step 2: Time passes beyond deadline + grace")
    ledger.advance(2 * 3600)
    print(f"  can_claim_abandoned={await buyer.escrow.can_claim_abandoned(tx_id)}")

    section("Step 3: Buyer reclaims")
    await buyer.claim_abandoned(tx_id)
    await print_escrow(buyer, tx_id)
    refunded = ledger.token_balance(BUYER) - balance_after_funding
    stats = await buyer.get_agent_score(SELLER)
    print(f"  Refunded {refunded / USDC:.2f} USDC; seller abandoned={stats.jobs_abandoned}")


# ===========================================================================
# Scenario 3: Dispute
# ===========================================================================
async def scenario_3_dispute() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 3: Dispute: delivery fails the committed criteria")
    print("=" * 70)

    ledger, market, buyer, seller = build_world()
    ledger.grant_resolver(RESOLVER)
    tx_id = "tx-dispute-001"
    criteria = {
        "type": "object",
        "required": ["summary", "issues"],
        "properties": {"issues": {"type": "array"}},
    }

    section("Step 1: Buyer funds with success criteria")
    market.purchase(tx_id, 9.0)
    await buyer.fund_and_verify(tx_id, SELLER, 9 * USDC, deadline=ledger.now() + 3600,
                                criteria=criteria)

    section("Step 2: Seller delivers an incomplete result")
    payload = {"summary": "looks fine"}
    await seller.deliver_and_prove(tx_id, payload)

    section("Step 3: Buyer disputes within the window")
    await buyer.dispute(tx_id)
    await print_escrow(buyer, tx_id)

    section("Step 4: Resolver adjudicates and submits")
    escrow = await buyer.get_escrow(tx_id)
    verdict = await CriteriaAdjudicator().adjudicate(escrow, criteria, market.deliveries[tx_id])
    print(f"  Verdict: {verdict.outcome.name} {verdict.buyer_percent}/{verdict.seller_percent} "
          f"({verdict.reasoning})")
    resolver = DisputeResolverService(ledger.connect(RESOLVER), ledger.escrow_address,
                                      ledger.resolver_address)
    await resolver.submit_resolution(tx_id, verdict.outcome, verdict.buyer_percent,
                                     verdict.seller_percent, verdict.reasoning)
    await print_escrow(buyer, tx_id)
    stats = await buyer.get_agent_score(SELLER)
    print(f"  Seller disputes_lost={stats.disputes_lost} score={stats.score}")
    assert ids.escrow_id(tx_id) == escrow.escrow_id


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_abandonment,
    3: scenario_3_dispute,
}


async def run_all() -> None:
    """Run all scenarios sequentially."""
    print("\n" + "=" * 70)
    print("  AGENT ESCROW SIMULATION (in-memory ledger)")
    print("=" * 70)
    for scenario in SCENARIOS.values():
        await scenario()
    print("\n" + "=" * 70)
    print("  ALL SCENARIOS COMPLETED SUCCESSFULLY")
    print("=" * 70 + "\n")


async def run_scenario(num: int) -> None:
    """Run a specific scenario."""
    if num not in SCENARIOS:
        print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
        return
    await SCENARIOS[num]()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Agent Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all())
    else:
        asyncio.run(run_scenario(args.scenario))
