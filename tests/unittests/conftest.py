from typing import Dict, List, Optional, Set

import pytest
from eth_account import Account
from eth_typing import ChecksumAddress, HexStr
from web3 import Web3

from mint_runner.engine import RetryEngine
from mint_runner.exceptions import ProviderError
from mint_runner.types import FeeData
from mint_runner.utils.configuration import MintConfig
from mint_runner.utils.contracts import ContractBinding, default_mint_abi
from tests.unittests.constants import (
    TEST_BLOCK_NUMBER,
    TEST_CONTRACT_ADDRESS,
    TEST_GAS_ESTIMATE,
    TEST_GAS_PRICE,
    TEST_NONCE,
    TEST_PRIVATE_KEYS,
    TEST_RPC_URL,
)


class FakeChainClient:
    """Stands in for :class:`mint_runner.client.ChainClient`, recording what was sent.

    `send_errors` is consumed one entry per broadcast, ``None`` entries succeed.
    `send_error_for` fails every broadcast of the given sender.
    With `mined_hashes` set, only the listed hashes have a receipt. A `receipt_status`
    of ``None`` leaves the status field out of receipts.
    """

    def __init__(
        self,
        fee_data: Optional[FeeData] = None,
        balance: int = 10 ** 18,
        nonce: int = TEST_NONCE,
        chain_id: int = 1,
    ):
        self.web3 = Web3()
        self.fee_data_result = fee_data or FeeData(gas_price=TEST_GAS_PRICE)
        self.fee_data_error: Optional[Exception] = None
        self.balance_result = balance
        self.nonce = nonce
        self._chain_id = chain_id
        self.gas_estimate = TEST_GAS_ESTIMATE
        self.estimate_error: Optional[Exception] = None
        self.call_error: Optional[Exception] = None
        self.send_errors: List[Optional[Exception]] = []
        self.send_error_for: Dict[ChecksumAddress, Exception] = {}
        self.mined = True
        self.mined_hashes: Optional[Set[HexStr]] = None
        self.receipt_status: Optional[int] = 1

        self.sent: List[dict] = []
        self.calls: List[dict] = []
        self.estimates: List[dict] = []
        self.nonce_queries: List[str] = []

    def chain_id(self) -> int:
        return self._chain_id

    def balance(self, address):
        return self.balance_result

    def transaction_count(self, address, block_identifier="pending"):
        self.nonce_queries.append(block_identifier)
        return self.nonce

    def fee_data(self) -> FeeData:
        if self.fee_data_error is not None:
            raise self.fee_data_error
        return self.fee_data_result

    def estimate_gas(self, transaction):
        self.estimates.append(transaction)
        if self.estimate_error is not None:
            raise self.estimate_error
        return self.gas_estimate

    def call(self, transaction):
        self.calls.append(transaction)
        if self.call_error is not None:
            raise self.call_error
        return b""

    def send_transaction(self, account, transaction) -> HexStr:
        self.sent.append(dict(transaction, sender=account.address))
        if account.address in self.send_error_for:
            raise self.send_error_for[account.address]
        if self.send_errors:
            error = self.send_errors.pop(0)
            if error is not None:
                raise error
        return HexStr(f"0x{len(self.sent):064x}")

    def get_receipt(self, tx_hash):
        if not self.mined:
            return None
        if self.mined_hashes is not None and tx_hash not in self.mined_hashes:
            return None
        receipt = {"transactionHash": tx_hash, "blockNumber": TEST_BLOCK_NUMBER}
        if self.receipt_status is not None:
            receipt["status"] = self.receipt_status
        return receipt


@pytest.fixture
def fake_client():
    return FakeChainClient()


@pytest.fixture
def make_config():
    def factory(**overrides) -> MintConfig:
        values = dict(
            rpc_url=TEST_RPC_URL,
            contract_address=TEST_CONTRACT_ADDRESS,
            private_keys=(TEST_PRIVATE_KEYS[0],),
            confirmation_timeout=5,
        )
        values.update(overrides)
        return MintConfig(**values)

    return factory


@pytest.fixture
def accounts():
    return [Account.from_key(key) for key in TEST_PRIVATE_KEYS]


@pytest.fixture
def account(accounts):
    return accounts[0]


@pytest.fixture
def binding():
    return ContractBinding(TEST_CONTRACT_ADDRESS, default_mint_abi("mint"), "mint")


@pytest.fixture
def recorded_pauses(monkeypatch):
    """Replace the engine's sleeps by a no-op, recording the requested durations."""
    pauses: List[float] = []

    def pause(self, seconds):
        pauses.append(seconds)
        return self.cancel_event.is_set()

    monkeypatch.setattr(RetryEngine, "_pause", pause)
    return pauses


@pytest.fixture
def underpriced_error():
    return ProviderError("replacement transaction underpriced")
