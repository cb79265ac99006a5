"""Thin JSON-RPC transport on top of :mod:`web3`.

All network I/O of the runner goes through :class:`ChainClient`. Transactions are
signed locally with :mod:`eth_account` and broadcast as raw transactions, so the
node never needs to know the signer's key.

The client is stateless apart from the cached chain id and may be shared by all
signer greenlets without locking.
"""
from contextlib import contextmanager
from typing import Any, Dict, Optional

import structlog
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress, HexStr
from eth_utils import to_hex
from requests.exceptions import RequestException
from web3 import HTTPProvider, Web3
from web3.exceptions import TransactionNotFound, Web3Exception
from web3.types import TxReceipt

from mint_runner.constants import FALLBACK_MAX_PRIORITY_FEE, RPC_REQUEST_TIMEOUT
from mint_runner.exceptions.config import ConfigurationError
from mint_runner.exceptions.transactions import ProviderError
from mint_runner.types import FeeData

log = structlog.get_logger(__name__)


@contextmanager
def translate_rpc_errors(action: str):
    """Re-raise transport and node errors as :class:`ProviderError`.

    The original exception is kept as ``__cause__`` and its message is passed on
    unchanged, since that is what the error classifier works with.
    """
    try:
        yield
    except ProviderError:
        raise
    except (Web3Exception, RequestException, ValueError, OSError) as e:
        log.debug("RPC request failed", action=action, error=str(e))
        raise ProviderError(str(e)) from e


def account_from_key(private_key: str) -> LocalAccount:
    """Load a signer from its hex encoded private key.

    :raises ConfigurationError: if the key is malformed. The key is never part of the message.
    """
    try:
        return Account.from_key(private_key)
    except (ValueError, TypeError) as e:
        raise ConfigurationError("Invalid private key supplied") from e


class ChainClient:
    def __init__(self, web3: Web3) -> None:
        self.web3 = web3
        self._chain_id: Optional[int] = None

    @classmethod
    def from_url(cls, rpc_url: str, timeout: float = RPC_REQUEST_TIMEOUT) -> "ChainClient":
        return cls(Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": timeout})))

    def chain_id(self) -> int:
        if self._chain_id is None:
            with translate_rpc_errors("chain_id"):
                self._chain_id = int(self.web3.eth.chain_id)
        return self._chain_id

    def balance(self, address: ChecksumAddress) -> int:
        with translate_rpc_errors("balance"):
            return int(self.web3.eth.get_balance(address))

    def transaction_count(
        self, address: ChecksumAddress, block_identifier: str = "pending"
    ) -> int:
        """Return the account nonce. ``pending`` includes transactions still in the mempool."""
        with translate_rpc_errors("transaction_count"):
            return int(self.web3.eth.get_transaction_count(address, block_identifier))

    def fee_data(self) -> FeeData:
        """Return the current fee market data.

        On base fee networks the fee cap is ``2 * base_fee + priority_fee``, leaving
        room for the base fee to double before the transaction gets stuck.
        """
        with translate_rpc_errors("fee_data"):
            block = self.web3.eth.get_block("latest")
            gas_price = self.web3.eth.gas_price

        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            return FeeData(gas_price=gas_price)

        try:
            priority_fee = int(self.web3.eth.max_priority_fee)
        except (Web3Exception, RequestException, ValueError) as e:
            log.debug("No priority fee suggestion from node, using fallback", error=str(e))
            priority_fee = FALLBACK_MAX_PRIORITY_FEE

        return FeeData(
            gas_price=gas_price,
            max_fee_per_gas=int(base_fee) * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        with translate_rpc_errors("estimate_gas"):
            return int(self.web3.eth.estimate_gas(transaction))

    def call(self, transaction: Dict[str, Any]) -> bytes:
        """Execute `transaction` read-only against the latest state."""
        with translate_rpc_errors("call"):
            return self.web3.eth.call(transaction)

    def send_transaction(self, account: LocalAccount, transaction: Dict[str, Any]) -> HexStr:
        """Sign `transaction` with `account` and broadcast it.

        The chain id is filled in if absent. Without a ``gas`` entry the node is
        asked for an estimate right before signing.

        :returns: the transaction hash.
        """
        transaction = dict(transaction)
        transaction["from"] = account.address
        transaction.setdefault("chainId", self.chain_id())
        if "gas" not in transaction:
            transaction["gas"] = self.estimate_gas(transaction)

        with translate_rpc_errors("send_transaction"):
            signed = account.sign_transaction(transaction)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return HexStr(to_hex(tx_hash))

    def get_receipt(self, tx_hash: HexStr) -> Optional[TxReceipt]:
        """Return the receipt of `tx_hash`, or ``None`` if it was not mined yet."""
        with translate_rpc_errors("get_receipt"):
            try:
                return self.web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None
