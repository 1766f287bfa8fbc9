"""Platform fee and time-window bounds enforced by the escrow contract."""

from __future__ import annotations

PLATFORM_FEE_BPS = 200  # 2%
BPS_DENOMINATOR = 10_000

# Seconds. A value of 0 passed to createEscrow selects the default.
DEFAULT_DISPUTE_WINDOW = 60 * 60
MIN_DISPUTE_WINDOW = 5 * 60
MAX_DISPUTE_WINDOW = 24 * 60 * 60

DEFAULT_ABANDONMENT_GRACE = 2 * 24 * 60 * 60
MIN_ABANDONMENT_GRACE = 60 * 60
MAX_ABANDONMENT_GRACE = 30 * 24 * 60 * 60

UNLIMITED_JOB_VALUE = 2**256 - 1


def platform_fee(amount: int) -> int:
    """Fee charged on top of amount, rounded up to the next token unit."""
    return -(-amount * PLATFORM_FEE_BPS // BPS_DENOMINATOR)


def total_with_fee(amount: int) -> int:
    """What the buyer must approve and will be debited when funding."""
    return amount + platform_fee(amount)


def effective_dispute_window(requested: int) -> int:
    return requested or DEFAULT_DISPUTE_WINDOW


def effective_abandonment_grace(requested: int) -> int:
    return requested or DEFAULT_ABANDONMENT_GRACE


def dispute_window_in_bounds(value: int) -> bool:
    return value == 0 or MIN_DISPUTE_WINDOW <= value <= MAX_DISPUTE_WINDOW


def abandonment_grace_in_bounds(value: int) -> bool:
    return value == 0 or MIN_ABANDONMENT_GRACE <= value <= MAX_ABANDONMENT_GRACE
