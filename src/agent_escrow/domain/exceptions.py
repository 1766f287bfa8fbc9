"""Domain exceptions for Agent Escrow.

These exceptions are framework-agnostic. Marketplace API failures map onto the
ApiError family by HTTP status; anything that goes wrong on-chain is a
LedgerCallError. Nothing in this package retries on these errors, they are
propagated to the caller as-is.
"""

from __future__ import annotations

from typing import Any

from agent_escrow.domain.enums import LedgerFailure


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Marketplace / caller errors ---


class ApiError(EscrowError):
    """An error reported by (or on behalf of) the marketplace API.

    Carries the HTTP status code so callers can branch without isinstance
    chains when they only care about the class of failure.
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        details: Any = None,
        code: str = "API_ERROR",
    ) -> None:
        super().__init__(message=message, code=code)
        self.status_code = status_code
        self.details = details


class ValidationError(ApiError):
    """Malformed caller input.

    Raised locally before any network call, or mapped from an HTTP 400.
    """

    def __init__(self, message: str = "Validation failed", details: Any = None) -> None:
        super().__init__(400, message, details=details, code="VALIDATION_ERROR")


class AuthenticationError(ApiError):
    def __init__(self, message: str = "Invalid or missing API key") -> None:
        super().__init__(401, message, code="AUTHENTICATION_ERROR")


class ForbiddenError(ApiError):
    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(403, message, code="FORBIDDEN")


class NotFoundError(ApiError):
    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(404, message, code="NOT_FOUND")


class PaymentRequiredError(ApiError):
    """Raised when a payment cannot go ahead for lack of funds or limits.

    payment_requirements holds the structured shortfall breakdown, e.g.
    {"servicePrice": ..., "platformFee": ..., "totalRequired": ...,
    "yourBalance": ..., "shortfall": ...}.
    """

    def __init__(
        self,
        message: str = "Payment required",
        payment_requirements: dict | None = None,
    ) -> None:
        super().__init__(402, message, details=payment_requirements, code="PAYMENT_REQUIRED")
        self.payment_requirements = payment_requirements or {}


class RateLimitError(ApiError):
    def __init__(self, message: str = "Rate limit exceeded", retry_after: int = 60) -> None:
        super().__init__(429, message, code="RATE_LIMITED")
        self.retry_after = retry_after


# --- Ledger errors ---


class LedgerCallError(EscrowError):
    """Raised when an on-chain call fails.

    failure tells a guard rejection (the ledger said no) apart from a
    transport failure (the ledger never answered).
    """

    def __init__(
        self,
        function: str,
        message: str,
        failure: LedgerFailure = LedgerFailure.REVERTED,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__(
            message=f"Ledger call {function} failed: {message}",
            code="LEDGER_CALL_FAILED",
        )
        self.function = function
        self.reason = message
        self.failure = failure
        self.tx_hash = tx_hash

    @property
    def is_guard_rejection(self) -> bool:
        return self.failure is not LedgerFailure.TRANSPORT

    @property
    def is_transport_failure(self) -> bool:
        return self.failure is LedgerFailure.TRANSPORT


class InsufficientAllowanceError(LedgerCallError):
    """Raised when funding fails because the token approval was too small."""

    def __init__(self, function: str, message: str, tx_hash: str | None = None) -> None:
        super().__init__(
            function=function,
            message=message,
            failure=LedgerFailure.INSUFFICIENT_ALLOWANCE,
            tx_hash=tx_hash,
        )
        self.code = "INSUFFICIENT_ALLOWANCE"


class WalletNotInitializedError(EscrowError):
    """Raised when a state-changing call is attempted without a signing account."""

    def __init__(self, message: str = "Wallet not initialized. Configure a signing key first.") -> None:
        super().__init__(message=message, code="WALLET_NOT_INITIALIZED")


# --- State Machine Errors ---


class InvalidStateTransitionError(EscrowError):
    """Raised by the lifecycle guard when an event cannot fire from a status.

    Example: FUNDED -> accept (delivery must be submitted first)
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Cannot {attempted_event} an escrow in status {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event
