"""UpdateTransactionBuilder: Builds and signs oracle update transactions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from web3 import AsyncWeb3, Web3

from .OracleInstruction import PriceStatus, encode_update

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)


class UpdateTransactionBuilder:
    """Builds signed transactions carrying an update instruction.

    The instruction is sent as raw calldata to the oracle contract. Nonces
    are tracked locally so that several unconfirmed updates can be in flight
    without reusing a nonce.

    :ivar w3: AsyncWeb3 instance used for gas price and nonce lookups.
    :ivar account: Signing account.
    :ivar oracle_address: Checksummed oracle contract address.
    :ivar confidence: Confidence published with every price.
    :ivar gas_limit: Gas limit of update transactions.
    :ivar chain_id: Chain ID, resolved by :meth:`connect`.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        account: LocalAccount,
        oracle_address: str,
        confidence: float = 0.0,
        gas_limit: int = 100_000,
        chain_id: int | None = None,
    ) -> None:
        """Initialize the builder.

        :param w3: AsyncWeb3 instance.
        :param account: Account signing the updates.
        :param oracle_address: Oracle contract address.
        :param confidence: Confidence value for every update.
        :param gas_limit: Gas limit (default: 100000).
        :param chain_id: Chain ID; fetched from the node when None.
        """
        self.w3 = w3
        self.account = account
        self.oracle_address = Web3.to_checksum_address(oracle_address)
        self.confidence = confidence
        self.gas_limit = gas_limit
        self.chain_id = chain_id
        self._next_nonce: int | None = None

    async def connect(self) -> None:
        """Resolve the chain ID, verifying the node is reachable."""
        if self.chain_id is None:
            self.chain_id = await self.w3.eth.chain_id
        logger.info(
            f"Signing updates as {self.account.address} for {self.oracle_address} "
            f"(chain_id={self.chain_id})"
        )

    def reset_nonce(self) -> None:
        """Forget the locally tracked nonce and use the node's count next time.

        Called when an update was not confirmed in time and may have been
        dropped from the mempool.
        """
        self._next_nonce = None

    async def _allocate_nonce(self) -> int:
        pending = await self.w3.eth.get_transaction_count(self.account.address, "pending")
        nonce = max(pending, self._next_nonce or 0)
        self._next_nonce = nonce + 1
        return nonce

    async def build(self, price: float, status: PriceStatus) -> bytes:
        """Build and sign an update transaction.

        :param price: Price to publish.
        :param status: Status to publish.
        :returns: Signed, serialized transaction.
        :raises RuntimeError: If :meth:`connect` was not called.
        """
        if self.chain_id is None:
            raise RuntimeError("UpdateTransactionBuilder.connect() was not called")

        tx = {
            "to": self.oracle_address,
            "data": encode_update(price, self.confidence, status),
            "value": 0,
            "gas": self.gas_limit,
            "gasPrice": await self.w3.eth.gas_price,
            "nonce": await self._allocate_nonce(),
            "chainId": self.chain_id,
        }
        signed = self.account.sign_transaction(tx)
        logger.debug(f"Signed update tx nonce={tx['nonce']} gasPrice={tx['gasPrice']}")
        return bytes(signed.raw_transaction)
