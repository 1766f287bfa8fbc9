"""ChainClient backed by a JSON-RPC node via web3.py.

Transactions are built, signed locally with an eth-account key and submitted
as raw transactions; the client waits for the receipt so a reverted call
surfaces as a LedgerCallError instead of a hash that silently failed.

Failure classification:
    ContractLogicError containing "allowance" -> InsufficientAllowanceError
    any other ContractLogicError / status 0   -> LedgerCallError(REVERTED)
    anything else (RPC down, timeout, ...)    -> LedgerCallError(TRANSPORT)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError

from agent_escrow.domain.enums import LedgerFailure
from agent_escrow.domain.exceptions import (
    InsufficientAllowanceError,
    LedgerCallError,
    WalletNotInitializedError,
)
from agent_escrow.infrastructure.abi import ABIS
from agent_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from agent_escrow.config import Settings
    from agent_escrow.domain.chain import FunctionCall

logger = get_logger(__name__)


def _rejection(function: str, exc: ContractLogicError) -> LedgerCallError:
    message = str(exc)
    if "allowance" in message.lower():
        return InsufficientAllowanceError(function, message)
    return LedgerCallError(function, message, LedgerFailure.REVERTED)


class Web3ChainClient:
    """Send/read contract calls through an RPC endpoint as one EOA."""

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        private_key: str = "",
        receipt_timeout: int = 120,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._chain_id = chain_id
        self._account: LocalAccount | None = (
            Account.from_key(private_key) if private_key else None
        )
        self._receipt_timeout = receipt_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> Web3ChainClient:
        return cls(
            rpc_url=settings.rpc_url,
            chain_id=settings.chain_id,
            private_key=settings.private_key,
            receipt_timeout=settings.rpc_timeout_seconds,
        )

    @property
    def account_address(self) -> str | None:
        return self._account.address if self._account else None

    def _bound_function(self, address: str, call: FunctionCall) -> Any:
        contract = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=ABIS[call.contract],
        )
        return getattr(contract.functions, call.function)(*call.args)

    async def send(self, to: str, call: FunctionCall) -> str:
        if self._account is None:
            raise WalletNotInitializedError()

        sender = self._account.address
        try:
            fn = self._bound_function(to, call)
            nonce = await self._w3.eth.get_transaction_count(sender, "pending")
            tx = await fn.build_transaction(
                {"from": sender, "nonce": nonce, "chainId": self._chain_id}
            )
            signed = self._account.sign_transaction(tx)
            raw_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                raw_hash, timeout=self._receipt_timeout
            )
        except ContractLogicError as exc:
            raise _rejection(call.function, exc) from exc
        except Exception as exc:
            logger.error("chain.send_failed", function=call.function, to=to, error=str(exc))
            raise LedgerCallError(call.function, str(exc), LedgerFailure.TRANSPORT) from exc

        tx_hash = AsyncWeb3.to_hex(raw_hash)
        if receipt["status"] != 1:
            raise LedgerCallError(call.function, "transaction reverted", tx_hash=tx_hash)

        logger.debug("chain.sent", function=call.function, to=to, tx_hash=tx_hash)
        return tx_hash

    async def read(self, address: str, call: FunctionCall) -> Any:
        try:
            return await self._bound_function(address, call).call()
        except ContractLogicError as exc:
            raise _rejection(call.function, exc) from exc
        except Exception as exc:
            logger.error("chain.read_failed", function=call.function, address=address, error=str(exc))
            raise LedgerCallError(call.function, str(exc), LedgerFailure.TRANSPORT) from exc

    async def get_balance(self, address: str) -> int:
        try:
            return int(await self._w3.eth.get_balance(AsyncWeb3.to_checksum_address(address)))
        except Exception as exc:
            raise LedgerCallError("eth_getBalance", str(exc), LedgerFailure.TRANSPORT) from exc
