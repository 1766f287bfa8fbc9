"""Domain enumerations for Agent Escrow.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no web3, no FastAPI imports).
"""

import enum


class EscrowStatus(enum.IntEnum):
    """Lifecycle states of an on-chain escrow.

    Values are the ordinals the escrow contract returns from getEscrow().
    Legal transitions are mirrored by the EscrowStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    NONE = 0
    FUNDED = 1
    DELIVERED = 2
    RELEASED = 3
    REFUNDED = 4
    DISPUTED = 5
    RESOLVED = 6
    ABANDONED = 7

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({
    EscrowStatus.RELEASED,
    EscrowStatus.REFUNDED,
    EscrowStatus.RESOLVED,
    EscrowStatus.ABANDONED,
})


class DisputeOutcome(enum.IntEnum):
    """Binding outcome of a dispute, as encoded for the resolver contract."""

    NONE = 0
    BUYER_REFUND = 1
    SELLER_PAID = 2
    SPLIT = 3


class GasStrategy(enum.StrEnum):
    """How an account pays network fees.

    AUTO is resolved to one of the two concrete modes by
    services/gas_strategy.py before any transaction is sent.
    """

    SELF_FUNDED = "self-funded"
    ERC20 = "erc20"
    AUTO = "auto"


class LedgerContract(enum.StrEnum):
    """Contracts the ledger capability can address.

    Chain backends use this to pick the ABI for encoding a FunctionCall.
    """

    ESCROW = "escrow"
    SCORE = "score"
    RESOLVER = "resolver"
    TOKEN = "token"


class LedgerFailure(enum.StrEnum):
    """Why a ledger call failed.

    REVERTED and INSUFFICIENT_ALLOWANCE are guard rejections by the ledger;
    TRANSPORT means the call never got a verdict (RPC down, timeout, ...).
    """

    REVERTED = "reverted"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    TRANSPORT = "transport"


class PollerState(enum.StrEnum):
    """Running state of a PurchasePoller."""

    RUNNING = "running"
    STOPPED = "stopped"
