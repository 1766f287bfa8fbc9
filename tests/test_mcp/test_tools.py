"""Tests for the MCP tool functions, called directly."""

from __future__ import annotations

import json

import pytest
from conftest import BUYER, SELLER, USDC

from agent_escrow.config import get_settings
from agent_escrow.domain.ids import escrow_id
from agent_escrow.domain.webhook_signature import sign_webhook_payload
from agent_escrow.mcp_server import tools


@pytest.fixture
def ledger_backed(monkeypatch, ledger, buyer_escrow):
    monkeypatch.setattr(tools, "_escrow_service", lambda: buyer_escrow)
    return ledger


@pytest.fixture
def signing_secret(monkeypatch):
    monkeypatch.setenv("WEBHOOK_SIGNING_SECRET", "whsec_mcp")
    get_settings.cache_clear()
    yield "whsec_mcp"
    get_settings.cache_clear()


class TestEscrowQuote:
    @pytest.mark.asyncio
    async def test_quote(self) -> None:
        result = await tools.escrow_quote("tx-1", 10 * USDC)
        assert result["escrow_id"] == escrow_id("tx-1")
        assert result["platform_fee"] == 200_000
        assert result["total_with_fee"] == 10_200_000

    @pytest.mark.asyncio
    async def test_bad_transaction_id(self) -> None:
        assert "error" in await tools.escrow_quote("")


class TestEscrowReads:
    @pytest.mark.asyncio
    async def test_missing_escrow(self, ledger_backed) -> None:
        assert await tools.get_escrow("tx-none") == {"transaction_id": "tx-none", "exists": False}

    @pytest.mark.asyncio
    async def test_funded_escrow(self, ledger_backed, buyer_escrow) -> None:
        await buyer_escrow.approve_and_fund("tx-mcp", SELLER, 5 * USDC, ledger_backed.now() + 3600)

        record = await tools.get_escrow("tx-mcp")
        assert record["exists"] is True
        assert record["status"] == "FUNDED"
        assert record["buyer"].lower() == BUYER

        actions = await tools.get_escrow_actions("tx-mcp")
        assert actions["can_finalize"] is False
        assert actions["dispute_window_active"] is False

    @pytest.mark.asyncio
    async def test_ledger_failure_is_reported(self, ledger_backed) -> None:
        ledger_backed.offline = True
        assert "error" in await tools.get_escrow("tx-mcp")


class TestVerifyWebhook:
    @pytest.mark.asyncio
    async def test_valid_signature(self, signing_secret) -> None:
        body = json.dumps({"event": "escrow.funded"})
        header = sign_webhook_payload(body, signing_secret)
        assert await tools.verify_webhook(body, header) == {"valid": True}

    @pytest.mark.asyncio
    async def test_wrong_secret(self, signing_secret) -> None:
        body = json.dumps({"event": "escrow.funded"})
        header = sign_webhook_payload(body, "whsec_other")
        assert await tools.verify_webhook(body, header) == {"valid": False}
