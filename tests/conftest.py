"""Shared test fixtures for the Agent Escrow test suite.

Provides:
    - A funded InMemoryLedger with buyer, seller and resolver accounts
    - EscrowService instances bound to each party
    - Helpers for signing webhook bodies
"""

from __future__ import annotations

import pytest

from agent_escrow.infrastructure.memory_ledger import InMemoryLedger
from agent_escrow.services.escrow_service import EscrowService

BUYER = "0x" + "b1" * 20
SELLER = "0x" + "5e" * 20
RESOLVER = "0x" + "4e" * 20
STRANGER = "0x" + "99" * 20
USDC = 10**6

# ---------------------------------------------------------------------------
# Ledger Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ledger() -> InMemoryLedger:
    """Return a ledger where the buyer holds 1,000 USDC and RESOLVER has the resolver role."""
    ledger = InMemoryLedger()
    ledger.mint(BUYER, 1_000 * USDC)
    ledger.grant_resolver(RESOLVER)
    return ledger


def _service(ledger: InMemoryLedger, address: str) -> EscrowService:
    return EscrowService(
        ledger.connect(address),
        ledger.escrow_address,
        ledger.token_address,
        clock=ledger.now,
    )


@pytest.fixture
def buyer_escrow(ledger: InMemoryLedger) -> EscrowService:
    return _service(ledger, BUYER)


@pytest.fixture
def seller_escrow(ledger: InMemoryLedger) -> EscrowService:
    return _service(ledger, SELLER)


@pytest.fixture
def stranger_escrow(ledger: InMemoryLedger) -> EscrowService:
    return _service(ledger, STRANGER)


@pytest.fixture
def webhook_secret() -> str:
    return "whsec_test_secret"
