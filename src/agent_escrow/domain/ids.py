"""Deterministic on-chain identifiers.

The escrow contract addresses records by bytes32. Every caller derives the id
from the platform transaction id with keccak-256, so the same off-chain
transaction always maps to the same on-chain record without a lookup table.
"""

from __future__ import annotations

import json
import re
from typing import Any

from web3 import Web3

from agent_escrow.domain.exceptions import ValidationError

_BYTES32_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def _keccak_hex(data: str) -> str:
    return Web3.to_hex(Web3.keccak(text=data))


def escrow_id(transaction_id: str) -> str:
    """Map a platform transaction id to its bytes32 escrow id (0x-prefixed hex)."""
    if not isinstance(transaction_id, str) or not transaction_id:
        raise ValidationError("transaction_id must be a non-empty string")
    return _keccak_hex(transaction_id)


def _canonical(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def criteria_hash(criteria: dict | str) -> str:
    """Commit to success criteria (JSON object or pre-serialized string)."""
    return _keccak_hex(_canonical(criteria))


def proof_hash(delivery: Any) -> str:
    """Hash delivered work for submit_delivery (same encoding as criteria_hash)."""
    return _keccak_hex(_canonical(delivery))


def is_bytes32(value: Any) -> bool:
    return isinstance(value, str) and bool(_BYTES32_RE.match(value))
