"""Contract ABIs for the escrow, score and resolver contracts plus ERC-20.

Only the functions this package calls are listed. Keyed by LedgerContract so
chain backends can look up the ABI for a FunctionCall.
"""

from __future__ import annotations

from agent_escrow.domain.enums import LedgerContract


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[tuple[str, str]] | None = None,
    mutability: str = "nonpayable",
) -> dict:
    return {
        "name": name,
        "type": "function",
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs or []],
    }


_ESCROW_ID = [("escrowId", "bytes32")]

ESCROW_ABI: list[dict] = [
    _fn("PLATFORM_FEE_BPS", [], [("", "uint256")], "view"),
    _fn(
        "createEscrow",
        [
            ("escrowId", "bytes32"),
            ("seller", "address"),
            ("amount", "uint256"),
            ("token", "address"),
            ("deadline", "uint256"),
            ("disputeWindow", "uint256"),
            ("abandonmentGrace", "uint256"),
            ("criteriaHash", "bytes32"),
        ],
    ),
    _fn("submitDelivery", [("escrowId", "bytes32"), ("proofHash", "bytes32")]),
    _fn("accept", _ESCROW_ID),
    _fn("finalizeRelease", _ESCROW_ID),
    _fn("dispute", _ESCROW_ID),
    _fn("claimAbandoned", _ESCROW_ID),
    _fn(
        "resolveDispute",
        [
            ("escrowId", "bytes32"),
            ("outcome", "uint8"),
            ("buyerPercent", "uint256"),
            ("sellerPercent", "uint256"),
        ],
    ),
    _fn(
        "getEscrow",
        _ESCROW_ID,
        [
            ("token", "address"),
            ("buyer", "address"),
            ("seller", "address"),
            ("lockedAmount", "uint256"),
            ("platformFee", "uint256"),
            ("status", "uint8"),
            ("createdAt", "uint256"),
            ("deadline", "uint256"),
            ("disputeWindow", "uint256"),
            ("abandonmentGrace", "uint256"),
            ("deliveredAt", "uint256"),
            ("proofHash", "bytes32"),
            ("criteriaHash", "bytes32"),
        ],
        "view",
    ),
    _fn("isDisputeWindowActive", _ESCROW_ID, [("", "bool")], "view"),
    _fn("canFinalize", _ESCROW_ID, [("", "bool")], "view"),
    _fn("canClaimAbandoned", _ESCROW_ID, [("", "bool")], "view"),
    _fn("isTokenSupported", [("token", "address")], [("", "bool")], "view"),
]

SCORE_ABI: list[dict] = [
    _fn("getScore", [("agent", "address")], [("", "int256")], "view"),
    _fn("getMaxJobValue", [("agent", "address")], [("", "uint256")], "view"),
    _fn(
        "getAgentStats",
        [("agent", "address")],
        [
            ("score", "int256"),
            ("jobs", "uint256"),
            ("disputesLost", "uint256"),
            ("abandoned", "uint256"),
            ("maxJobValue", "uint256"),
        ],
        "view",
    ),
]

RESOLVER_ABI: list[dict] = [
    _fn("RESOLVER_ROLE", [], [("", "bytes32")], "view"),
    _fn(
        "submitResolution",
        [
            ("escrowId", "bytes32"),
            ("outcome", "uint8"),
            ("buyerPercent", "uint256"),
            ("sellerPercent", "uint256"),
            ("reasoning", "string"),
        ],
    ),
]

ERC20_ABI: list[dict] = [
    _fn("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")]),
    _fn("balanceOf", [("account", "address")], [("", "uint256")], "view"),
    _fn("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")], "view"),
]

ABIS: dict[LedgerContract, list[dict]] = {
    LedgerContract.ESCROW: ESCROW_ABI,
    LedgerContract.SCORE: SCORE_ABI,
    LedgerContract.RESOLVER: RESOLVER_ABI,
    LedgerContract.TOKEN: ERC20_ABI,
}
