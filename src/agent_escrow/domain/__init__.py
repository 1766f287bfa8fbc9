"""Domain layer: escrow lifecycle rules with no transport dependencies."""

from agent_escrow.domain.chain import ChainClient, FunctionCall
from agent_escrow.domain.enums import (
    DisputeOutcome,
    EscrowStatus,
    GasStrategy,
    LedgerContract,
    LedgerFailure,
    PollerState,
)
from agent_escrow.domain.exceptions import (
    ApiError,
    AuthenticationError,
    EscrowError,
    ForbiddenError,
    InsufficientAllowanceError,
    InvalidStateTransitionError,
    LedgerCallError,
    NotFoundError,
    PaymentRequiredError,
    RateLimitError,
    ValidationError,
    WalletNotInitializedError,
)
from agent_escrow.domain.ids import criteria_hash, escrow_id, proof_hash
from agent_escrow.domain.models import ZERO_ADDRESS, ZERO_BYTES32, AgentStats, Escrow
from agent_escrow.domain.state_machine import (
    EscrowStateMachine,
    validate_transition,
)
from agent_escrow.domain.webhook_signature import (
    sign_webhook_payload,
    verify_webhook_signature,
)

__all__ = [
    "ChainClient",
    "FunctionCall",
    "DisputeOutcome",
    "EscrowStatus",
    "GasStrategy",
    "LedgerContract",
    "LedgerFailure",
    "PollerState",
    "ApiError",
    "AuthenticationError",
    "EscrowError",
    "ForbiddenError",
    "InsufficientAllowanceError",
    "InvalidStateTransitionError",
    "LedgerCallError",
    "NotFoundError",
    "PaymentRequiredError",
    "RateLimitError",
    "ValidationError",
    "WalletNotInitializedError",
    "criteria_hash",
    "escrow_id",
    "proof_hash",
    "ZERO_ADDRESS",
    "ZERO_BYTES32",
    "AgentStats",
    "Escrow",
    "EscrowStateMachine",
    "validate_transition",
    "sign_webhook_payload",
    "verify_webhook_signature",
]
