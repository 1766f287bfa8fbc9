"""Gas payment mode selection.

An account either pays gas in the native asset ("self-funded") or through a
paymaster in the settlement token ("erc20"). "auto" picks self-funded when the
native balance covers the threshold, erc20 otherwise.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from agent_escrow.domain.enums import GasStrategy
from agent_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from agent_escrow.domain.chain import ChainClient

logger = get_logger(__name__)

MIN_GAS_BALANCE_WEI = 10**16


def resolve_gas_strategy(
    strategy: GasStrategy | str,
    native_balance: int,
    threshold: int = MIN_GAS_BALANCE_WEI,
) -> GasStrategy:
    """Decide the concrete gas mode. Concrete modes pass through unchanged."""
    strategy = GasStrategy(strategy)
    if strategy is not GasStrategy.AUTO:
        return strategy
    if native_balance >= threshold:
        return GasStrategy.SELF_FUNDED
    return GasStrategy.ERC20


async def select_gas_strategy(
    chain: ChainClient,
    account: str,
    strategy: GasStrategy | str = GasStrategy.AUTO,
    threshold: int = MIN_GAS_BALANCE_WEI,
) -> GasStrategy:
    """Resolve strategy for account, reading its balance once when needed."""
    strategy = GasStrategy(strategy)
    if strategy is not GasStrategy.AUTO:
        return strategy

    balance = await chain.get_balance(account)
    resolved = resolve_gas_strategy(strategy, balance, threshold)
    logger.info("gas.strategy_resolved", account=account, balance=balance, threshold=threshold, strategy=str(resolved))
    return resolved
