"""PurchasePoller: surfaces new purchases for a seller, each exactly once.

Each cycle scans the configured statuses in order, yields every transaction id
not seen before, then sleeps for the interval. stop() flips a flag that is
only read at the top of a cycle: a scan or sleep already in progress runs to
completion, and at most one more cycle's worth of work is lost.

The seen-id set lives as long as the poller instance and is never pruned.

Two ways to consume it:
    async for tx in poller:           # or poller.purchases()
        ...
    await poller.run(handle_purchase)  # explicit loop feeding a sink
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from agent_escrow.domain.enums import PollerState
from agent_escrow.logging_config import get_logger
from agent_escrow.schemas.marketplace import Transaction

if TYPE_CHECKING:
    from agent_escrow.config import Settings

logger = get_logger(__name__)

DEFAULT_STATUSES = ("escrowed", "pending")


class TransactionFeed(Protocol):
    """Anything that can list transactions by role and status."""

    async def list_transactions(
        self, role: str = "seller", status: str | None = None, limit: int = 50
    ) -> Sequence[Transaction]: ...


class PurchasePoller:
    """Lazy, restartable stream of new seller transactions."""

    def __init__(
        self,
        feed: TransactionFeed,
        interval_seconds: float = 5.0,
        statuses: Sequence[str] = DEFAULT_STATUSES,
        limit: int = 50,
        role: str = "seller",
        on_error: Callable[[str, Exception], Any] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._feed = feed
        self._interval = interval_seconds
        self._statuses = tuple(statuses)
        self._limit = limit
        self._role = role
        self._on_error = on_error
        self._sleep = sleep
        self._running = False
        self._seen: set[str] = set()

    @classmethod
    def from_settings(cls, feed: TransactionFeed, settings: Settings, **kwargs: Any) -> PurchasePoller:
        """Build a poller using POLL_INTERVAL_SECONDS, POLL_STATUSES and POLL_LIMIT."""
        return cls(
            feed,
            interval_seconds=settings.poll_interval_seconds,
            statuses=settings.poll_status_list,
            limit=settings.poll_limit,
            **kwargs,
        )

    @property
    def state(self) -> PollerState:
        return PollerState.RUNNING if self._running else PollerState.STOPPED

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def stop(self) -> None:
        """Request the loop to end before its next cycle."""
        self._running = False

    async def _report(self, status: str, exc: Exception) -> None:
        if self._on_error is None:
            return
        try:
            result = self._on_error(status, exc)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("poller.on_error_failed", status=status)

    async def _scan(self, status: str) -> list[Transaction]:
        try:
            batch = await self._feed.list_transactions(
                role=self._role, status=status, limit=self._limit
            )
        except Exception as exc:
            logger.warning("poller.scan_failed", status=status, error=str(exc))
            await self._report(status, exc)
            return []

        return list(batch)

    async def purchases(self) -> AsyncIterator[Transaction]:
        """Yield each previously unseen transaction, forever until stop()."""
        self._running = True
        logger.info("poller.started", statuses=list(self._statuses), interval=self._interval)
        try:
            while self._running:
                for status in self._statuses:
                    for tx in await self._scan(status):
                        if tx.id in self._seen:
                            continue
                        self._seen.add(tx.id)
                        yield tx
                await self._sleep(self._interval)
        finally:
            self._running = False
            logger.info("poller.stopped", seen=len(self._seen))

    def __aiter__(self) -> AsyncIterator[Transaction]:
        return self.purchases()

    async def run(self, sink: Callable[[Transaction], Any]) -> None:
        """Feed every new transaction to sink until stop() is called.

        sink may be sync or async. An exception raised by sink ends the loop.
        """
        async for tx in self.purchases():
            result = sink(tx)
            if inspect.isawaitable(result):
                await result
