"""Escrow Lifecycle State Machine Guard.

Uses python-statemachine to mirror the transitions the escrow contract allows.
The contract is the authoritative guard; this machine answers "which calls
could possibly succeed from here" without a round-trip, and is what the
in-memory ledger uses to enforce the same lifecycle in simulations and tests.

Terminal states are final: once RELEASED, REFUNDED, RESOLVED or ABANDONED an
escrow never moves again.

Transition table:
    NONE       -> FUNDED      (fund)
    FUNDED     -> DELIVERED   (submit_delivery)
    FUNDED     -> ABANDONED   (claim_abandoned)
    FUNDED     -> REFUNDED    (refund, ledger-side only)
    DELIVERED  -> RELEASED    (accept)
    DELIVERED  -> RELEASED    (finalize_release)
    DELIVERED  -> DISPUTED    (dispute)
    DISPUTED   -> RESOLVED    (resolve_dispute)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from agent_escrow.domain.enums import EscrowStatus
from agent_escrow.domain.exceptions import InvalidStateTransitionError


class EscrowStateMachine(StateMachine):
    """State machine that guards escrow lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_status="FUNDED")
        sm.submit_delivery()  # transitions to DELIVERED
        sm.current_state      # State('DELIVERED', ...)
    """

    # --- States ---
    NONE = State("NONE", initial=True)
    FUNDED = State("FUNDED")
    DELIVERED = State("DELIVERED")
    RELEASED = State("RELEASED", final=True)
    REFUNDED = State("REFUNDED", final=True)
    DISPUTED = State("DISPUTED")
    RESOLVED = State("RESOLVED", final=True)
    ABANDONED = State("ABANDONED", final=True)

    # --- Events / Transitions ---

    # Funding
    fund = NONE.to(FUNDED)

    # Delivery
    submit_delivery = FUNDED.to(DELIVERED)

    # Release
    accept = DELIVERED.to(RELEASED)
    finalize_release = DELIVERED.to(RELEASED)

    # Disputes
    dispute = DELIVERED.to(DISPUTED)
    resolve_dispute = DISPUTED.to(RESOLVED)

    # Undelivered escrows
    claim_abandoned = FUNDED.to(ABANDONED)
    refund = FUNDED.to(REFUNDED)

    def __init__(self, current_status: str | EscrowStatus = "NONE") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: An EscrowStatus member or its name (e.g., "FUNDED").
        """
        if isinstance(current_status, EscrowStatus):
            current_status = current_status.name
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        # start_value expects the string value, not the State object
        super().__init__(start_value=current_status)

    @property
    def status(self) -> EscrowStatus:
        """Return the current state as an EscrowStatus."""
        return EscrowStatus[str(self.current_state.value)]

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [getattr(event, "id", None) or event.name for event in self.allowed_events]


def validate_transition(current_status: str | EscrowStatus, event_name: str) -> EscrowStatus:
    """Validate a state transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns the
    resulting status.

    Raises:
        InvalidStateTransitionError: If the event cannot fire from current_status.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method) or event_name not in _EVENT_NAMES:
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {sm.status.name}: {sm.get_allowed_events()}"
        )

    try:
        event_method()
    except TransitionNotAllowed as exc:
        raise InvalidStateTransitionError(sm.status.name, event_name) from exc
    return sm.status


_EVENT_NAMES = frozenset({
    "fund",
    "submit_delivery",
    "accept",
    "finalize_release",
    "dispute",
    "resolve_dispute",
    "claim_abandoned",
    "refund",
})
