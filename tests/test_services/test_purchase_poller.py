"""Tests for PurchasePoller.

Covers:
    - Deduplication within and across statuses and cycles
    - Per-status error isolation and the on_error callback
    - stop() semantics (flag read at the top of a cycle only)
    - Restart keeps the seen set; the seen set is never pruned
"""

from __future__ import annotations

import pytest

from agent_escrow.config import Settings
from agent_escrow.domain.enums import PollerState
from agent_escrow.schemas.marketplace import Transaction
from agent_escrow.services.purchase_poller import PurchasePoller


def _tx(tx_id: str, status: str = "escrowed") -> Transaction:
    return Transaction(id=tx_id, status=status, amount=1.0, currency="USDC")


class _ScriptedFeed:
    """Returns the same page (or raises the same error) for a status every cycle."""

    def __init__(self, pages: dict[str, list[str] | Exception]) -> None:
        self.pages = pages
        self.calls: list[tuple[str, str | None, int]] = []

    async def list_transactions(self, role: str = "seller", status: str | None = None, limit: int = 50):
        self.calls.append((role, status, limit))
        page = self.pages.get(status, [])
        if isinstance(page, Exception):
            raise page
        return [_tx(tx_id, status) for tx_id in page]


class _FreshFeed:
    """Returns brand-new ids on every call."""

    def __init__(self, per_call: int) -> None:
        self.per_call = per_call
        self.counter = 0

    async def list_transactions(self, role: str = "seller", status: str | None = None, limit: int = 50):
        batch = [_tx(f"tx-{self.counter + i}", status) for i in range(self.per_call)]
        self.counter += self.per_call
        return batch


class _StopAfter:
    """Fake sleep that records intervals and stops the poller after N cycles."""

    def __init__(self, cycles: int) -> None:
        self.cycles = cycles
        self.calls: list[float] = []
        self.poller: PurchasePoller | None = None

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if len(self.calls) >= self.cycles:
            self.poller.stop()


def _poller(feed, cycles: int = 1, **kwargs) -> tuple[PurchasePoller, _StopAfter]:
    sleep = _StopAfter(cycles)
    poller = PurchasePoller(feed, sleep=sleep, **kwargs)
    sleep.poller = poller
    return poller, sleep


async def _collect(poller: PurchasePoller) -> list[str]:
    return [tx.id async for tx in poller]


class TestDeduplication:
    @pytest.mark.asyncio
    async def test_same_id_across_statuses_yields_once(self) -> None:
        feed = _ScriptedFeed({"escrowed": ["tx1"], "pending": ["tx1", "tx2"]})
        poller, _ = _poller(feed)

        assert await _collect(poller) == ["tx1", "tx2"]

    @pytest.mark.asyncio
    async def test_later_cycles_yield_nothing_already_seen(self) -> None:
        feed = _ScriptedFeed({"escrowed": ["tx1"], "pending": ["tx2"]})
        poller, sleep = _poller(feed, cycles=3)

        assert await _collect(poller) == ["tx1", "tx2"]
        assert len(sleep.calls) == 3
        assert len(feed.calls) == 6

    @pytest.mark.asyncio
    async def test_duplicate_within_a_page(self) -> None:
        feed = _ScriptedFeed({"escrowed": ["tx1", "tx1"]})
        poller, _ = _poller(feed)
        assert await _collect(poller) == ["tx1"]

    @pytest.mark.asyncio
    async def test_scans_statuses_in_order_with_limit_and_role(self) -> None:
        feed = _ScriptedFeed({})
        poller, _ = _poller(feed, statuses=("pending", "escrowed"), limit=10)
        await _collect(poller)
        assert feed.calls == [("seller", "pending", 10), ("seller", "escrowed", 10)]

    @pytest.mark.asyncio
    async def test_defaults(self) -> None:
        feed = _ScriptedFeed({})
        poller, sleep = _poller(feed)
        await _collect(poller)
        assert feed.calls == [("seller", "escrowed", 50), ("seller", "pending", 50)]
        assert sleep.calls == [5.0]


class TestErrorIsolation:
    @pytest.mark.asyncio
    async def test_failing_status_does_not_stop_the_cycle(self) -> None:
        boom = RuntimeError("feed down")
        errors: list[tuple[str, Exception]] = []
        feed = _ScriptedFeed({"escrowed": boom, "pending": ["tx3"]})
        poller, _ = _poller(feed, on_error=lambda status, exc: errors.append((status, exc)))

        assert await _collect(poller) == ["tx3"]
        assert errors == [("escrowed", boom)]

    @pytest.mark.asyncio
    async def test_async_on_error_is_awaited(self) -> None:
        seen: list[str] = []

        async def on_error(status: str, exc: Exception) -> None:
            seen.append(status)

        feed = _ScriptedFeed({"escrowed": ValueError("bad"), "pending": ValueError("bad")})
        poller, _ = _poller(feed, cycles=2, on_error=on_error)

        assert await _collect(poller) == []
        assert seen == ["escrowed", "pending", "escrowed", "pending"]

    @pytest.mark.asyncio
    async def test_error_is_retried_next_cycle(self) -> None:
        feed = _ScriptedFeed({"escrowed": RuntimeError("once")})

        async def recover(status: str, exc: Exception) -> None:
            feed.pages["escrowed"] = ["tx9"]

        poller, _ = _poller(feed, cycles=2, on_error=recover)
        assert await _collect(poller) == ["tx9"]

    @pytest.mark.asyncio
    async def test_failing_on_error_does_not_end_polling(self) -> None:
        calls: list[str] = []

        def on_error(status: str, exc: Exception) -> None:
            calls.append(status)
            raise RuntimeError("reporter broke")

        feed = _ScriptedFeed({"escrowed": ValueError("bad"), "pending": ["tx4"]})
        poller, _ = _poller(feed, cycles=2, on_error=on_error)

        assert await _collect(poller) == ["tx4"]
        assert calls == ["escrowed", "escrowed"]


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_takes_effect_at_next_cycle(self) -> None:
        feed = _ScriptedFeed({"escrowed": ["tx1"], "pending": ["tx2"]})
        sleeps: list[float] = []

        async def sleep(seconds: float) -> None:
            sleeps.append(seconds)

        poller = PurchasePoller(feed, sleep=sleep)
        received: list[str] = []

        def sink(tx: Transaction) -> None:
            received.append(tx.id)
            poller.stop()

        await poller.run(sink)

        # The in-flight cycle completes (both statuses, then the sleep).
        assert received == ["tx1", "tx2"]
        assert sleeps == [5.0]

    @pytest.mark.asyncio
    async def test_state_transitions(self) -> None:
        feed = _ScriptedFeed({"escrowed": ["tx1"]})
        poller, _ = _poller(feed)
        assert poller.state is PollerState.STOPPED

        states = []
        async for _ in poller:
            states.append(poller.state)

        assert states == [PollerState.RUNNING]
        assert poller.state is PollerState.STOPPED

    @pytest.mark.asyncio
    async def test_async_sink(self) -> None:
        feed = _ScriptedFeed({"escrowed": ["tx1"]})
        poller, _ = _poller(feed)
        received: list[str] = []

        async def sink(tx: Transaction) -> None:
            received.append(tx.id)

        await poller.run(sink)
        assert received == ["tx1"]


class TestSeenSet:
    @pytest.mark.asyncio
    async def test_restart_does_not_repeat(self) -> None:
        feed = _ScriptedFeed({"escrowed": ["tx1"]})
        poller, sleep = _poller(feed)
        assert await _collect(poller) == ["tx1"]

        feed.pages["pending"] = ["tx2"]
        sleep.calls.clear()
        assert await _collect(poller) == ["tx2"]

    @pytest.mark.asyncio
    async def test_seen_set_grows_without_bound(self) -> None:
        poller, _ = _poller(_FreshFeed(per_call=25), cycles=4)
        ids = await _collect(poller)

        assert len(ids) == 4 * 2 * 25
        assert poller.seen_count == len(ids)


class TestFromSettings:
    @pytest.mark.asyncio
    async def test_uses_configured_statuses_and_limit(self) -> None:
        settings = Settings(poll_interval_seconds=0.5, poll_statuses="pending, escrowed", poll_limit=7)
        feed = _ScriptedFeed({"pending": ["tx1"]})
        poller = PurchasePoller.from_settings(feed, settings)

        stream = poller.purchases()
        assert (await anext(stream)).id == "tx1"
        poller.stop()
        await stream.aclose()

        assert feed.calls[0] == ("seller", "pending", 7)
