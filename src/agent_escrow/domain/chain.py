"""Ledger capability protocol.

Every on-chain interaction in the package goes through a ChainClient. This is
a Protocol (structural subtyping), so backends don't need to inherit from a
base class; they just need to match the shape.

Implementations:
    - infrastructure/web3_chain.py     (JSON-RPC via web3 + eth-account)
    - infrastructure/memory_ledger.py  (in-process simulation)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from agent_escrow.domain.enums import LedgerContract


@dataclass(frozen=True)
class FunctionCall:
    """A contract function invocation, before ABI encoding.

    Attributes:
        contract: Which contract ABI the function belongs to.
        function: ABI function name, e.g. "createEscrow".
        args: Positional arguments in ABI order.
    """

    contract: LedgerContract
    function: str
    args: tuple[Any, ...] = ()


@runtime_checkable
class ChainClient(Protocol):
    """Send-transaction and read-contract primitives bound to one account.

    Both methods raise LedgerCallError on failure; they never retry.
    """

    @property
    def account_address(self) -> str | None:
        """Address transactions are sent from, None for read-only clients."""
        ...

    async def send(self, to: str, call: FunctionCall) -> str:
        """Submit a state-changing call and return its transaction hash."""
        ...

    async def read(self, address: str, call: FunctionCall) -> Any:
        """Evaluate a view function and return its decoded result."""
        ...

    async def get_balance(self, address: str) -> int:
        """Return the native-asset balance of address, in wei."""
        ...
