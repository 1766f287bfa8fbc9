"""MCP Tool definitions for Agent Escrow.

These tools expose read-only escrow and reputation queries via the Model
Context Protocol, so an AI agent can inspect an escrow before deciding what to
call next. Nothing here signs or sends a transaction.

Tools:
    - escrow_quote: Derive the escrow id and fee for a transaction
    - get_escrow: Read the on-chain escrow record
    - get_escrow_actions: Which lifecycle calls may succeed right now
    - get_agent_stats: Reputation score and max job value
    - resolve_gas: Pick self-funded vs erc20 gas for an account
    - verify_webhook: Check a webhook signature against the configured secret

Run standalone with `agent-escrow-mcp` (transport from MCP_TRANSPORT).
"""

from __future__ import annotations

from dataclasses import asdict
from functools import lru_cache

from mcp.server.fastmcp import FastMCP

from agent_escrow.config import get_settings
from agent_escrow.domain import ids, limits
from agent_escrow.domain.webhook_signature import verify_webhook_signature
from agent_escrow.infrastructure.web3_chain import Web3ChainClient
from agent_escrow.logging_config import get_logger
from agent_escrow.services.escrow_service import EscrowService
from agent_escrow.services.gas_strategy import select_gas_strategy
from agent_escrow.services.reputation_service import ReputationService

logger = get_logger(__name__)

mcp = FastMCP(
    "Agent Escrow",
    json_response=True,
)


@lru_cache(maxsize=1)
def _chain() -> Web3ChainClient:
    # Read-only client, no signing key.
    settings = get_settings()
    return Web3ChainClient(settings.rpc_url, settings.chain_id, receipt_timeout=settings.rpc_timeout_seconds)


def _escrow_service() -> EscrowService:
    settings = get_settings()
    return EscrowService(_chain(), settings.escrow_address, settings.token_address)


@mcp.tool()
async def escrow_quote(transaction_id: str, amount: int = 0) -> dict:
    """Derive the on-chain escrow id for a transaction and quote the fee.

    Args:
        transaction_id: Marketplace transaction id.
        amount: Settlement amount in smallest token units (optional).

    Returns:
        escrow_id plus platform_fee and total_with_fee for amount.
    """
    try:
        return {
            "transaction_id": transaction_id,
            "escrow_id": ids.escrow_id(transaction_id),
            "platform_fee": limits.platform_fee(amount),
            "total_with_fee": limits.total_with_fee(amount),
        }
    except Exception as exc:
        return {"error": str(exc)}


@mcp.tool()
async def get_escrow(transaction_id: str) -> dict:
    """Read the escrow record for a marketplace transaction.

    Returns:
        The record fields, with status as a name, or {"exists": false}.
    """
    try:
        escrow = await _escrow_service().get_escrow(transaction_id)
        if escrow is None:
            return {"transaction_id": transaction_id, "exists": False}
        record = asdict(escrow)
        record["status"] = escrow.status.name
        return {"transaction_id": transaction_id, "exists": True, **record}
    except Exception as exc:
        logger.exception("mcp.get_escrow.error")
        return {"error": str(exc)}


@mcp.tool()
async def get_escrow_actions(transaction_id: str) -> dict:
    """List lifecycle calls that may fire and the ledger's timing checks.

    The lists are advisory: the escrow contract makes the final decision.
    """
    try:
        svc = _escrow_service()
        return {
            "transaction_id": transaction_id,
            "allowed_actions": await svc.get_allowed_actions(transaction_id),
            "dispute_window_active": await svc.is_dispute_window_active(transaction_id),
            "can_finalize": await svc.can_finalize(transaction_id),
            "can_claim_abandoned": await svc.can_claim_abandoned(transaction_id),
        }
    except Exception as exc:
        logger.exception("mcp.get_escrow_actions.error")
        return {"error": str(exc)}


@mcp.tool()
async def get_agent_stats(agent: str) -> dict:
    """Reputation stats for an agent address, including its max job value."""
    try:
        stats = await ReputationService(_chain(), get_settings().score_address).get_agent_stats(agent)
        return {"agent": agent, **asdict(stats)}
    except Exception as exc:
        logger.exception("mcp.get_agent_stats.error")
        return {"error": str(exc)}


@mcp.tool()
async def resolve_gas(account: str, strategy: str = "") -> dict:
    """Resolve a gas strategy ('self-funded', 'erc20' or 'auto') for account.

    An empty strategy uses the configured GAS_STRATEGY.
    """
    try:
        settings = get_settings()
        strategy = strategy or settings.gas_strategy
        resolved = await select_gas_strategy(_chain(), account, strategy, settings.min_gas_balance_wei)
        return {"account": account, "requested": strategy, "resolved": str(resolved)}
    except Exception as exc:
        logger.exception("mcp.resolve_gas.error")
        return {"error": str(exc)}


@mcp.tool()
async def verify_webhook(body: str, signature_header: str) -> dict:
    """Check a webhook body and signature header against the configured secret."""
    settings = get_settings()
    if not settings.webhook_signing_secret:
        return {"error": "WEBHOOK_SIGNING_SECRET is not configured"}
    valid = verify_webhook_signature(
        body,
        signature_header,
        settings.webhook_signing_secret,
        settings.webhook_tolerance_seconds,
    )
    return {"valid": valid}


def main() -> None:
    """Console entry point: serve the tools over the configured transport."""
    from agent_escrow.logging_config import setup_logging

    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)
    mcp.run(transport=settings.mcp_transport)
