"""CriteriaAdjudicator: settles a disputed delivery against its success criteria.

Use case: the buyer committed to a JSON Schema when funding (its keccak hash is
the escrow's criteria_hash). On dispute, the resolver checks that the schema it
was handed is the committed one, then validates the delivered payload.

Adjudication flow:
    1. The escrow must carry a criteria_hash, and the criteria must hash to it.
    2. Parse the delivery payload as JSON (strings only; objects are used as-is).
    3. Validate against the criteria with Draft7Validator.
    4. Valid -> SELLER_PAID 0/100, invalid -> BUYER_REFUND 100/0.

The result is a proposal; submitting it is DisputeResolverService's job.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import jsonschema
from jsonschema import Draft7Validator

from agent_escrow.domain import ids
from agent_escrow.domain.enums import DisputeOutcome
from agent_escrow.domain.exceptions import ValidationError
from agent_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from agent_escrow.domain.models import Escrow

logger = get_logger(__name__)


@dataclass(frozen=True)
class Adjudication:
    """A proposed dispute resolution."""

    outcome: DisputeOutcome
    buyer_percent: int
    seller_percent: int
    reasoning: str
    errors: list[dict] = field(default_factory=list)


class CriteriaAdjudicator:
    """Decides disputes by checking deliveries against committed JSON Schema criteria."""

    async def adjudicate(
        self,
        escrow: Escrow,
        criteria: dict | str,
        delivery_payload: Any,
    ) -> Adjudication:
        """Propose an outcome for a disputed escrow.

        Raises:
            ValidationError: no criteria were committed, the criteria don't
                match the commitment, or the criteria are not a valid schema.
        """
        if escrow.criteria_hash is None:
            raise ValidationError("Escrow has no committed success criteria")
        if ids.criteria_hash(criteria).lower() != escrow.criteria_hash.lower():
            raise ValidationError(
                "Criteria do not match the escrow's criteria_hash",
                details={"criteria_hash": escrow.criteria_hash},
            )

        try:
            schema = json.loads(criteria) if isinstance(criteria, str) else criteria
        except json.JSONDecodeError as exc:
            raise ValidationError("Success criteria are not valid JSON") from exc
        logger.info("verifier.criteria.start", escrow_id=escrow.escrow_id)

        # --- Step 1: Parse the delivery ---
        if isinstance(delivery_payload, str):
            try:
                delivery = json.loads(delivery_payload)
            except json.JSONDecodeError as exc:
                logger.info("verifier.criteria.json_parse_failed", escrow_id=escrow.escrow_id)
                return Adjudication(
                    outcome=DisputeOutcome.BUYER_REFUND,
                    buyer_percent=100,
                    seller_percent=0,
                    reasoning=f"Delivery is not valid JSON: {exc}",
                )
        else:
            delivery = delivery_payload

        # --- Step 2: Validate against the committed schema ---
        try:
            validator = Draft7Validator(schema)
            validator.check_schema(schema)
            errors = sorted(validator.iter_errors(delivery), key=lambda e: list(e.path))
        except jsonschema.SchemaError as exc:
            logger.error("verifier.criteria.invalid_schema", escrow_id=escrow.escrow_id, error=exc.message)
            raise ValidationError(f"Success criteria are not a valid JSON Schema: {exc.message}") from exc

        if errors:
            error_details = [
                {"path": list(err.path), "message": err.message} for err in errors
            ]
            logger.info(
                "verifier.criteria.failed",
                escrow_id=escrow.escrow_id,
                error_count=len(errors),
            )
            return Adjudication(
                outcome=DisputeOutcome.BUYER_REFUND,
                buyer_percent=100,
                seller_percent=0,
                reasoning=f"Delivery failed {len(errors)} success criteria check(s).",
                errors=error_details,
            )

        logger.info("verifier.criteria.passed", escrow_id=escrow.escrow_id)
        return Adjudication(
            outcome=DisputeOutcome.SELLER_PAID,
            buyer_percent=0,
            seller_percent=100,
            reasoning="Delivery satisfies the committed success criteria.",
        )
