from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from eth_typing import ChecksumAddress, HexStr
from typing_extensions import TypedDict


@dataclass(frozen=True)
class LegacyFee:
    """Single gas price fee model (pre EIP-1559)."""

    gas_price: int

    def as_tx_fields(self) -> dict:
        return {"gasPrice": self.gas_price}


@dataclass(frozen=True)
class DynamicFee:
    """Base fee fee model (EIP-1559): a fee cap plus the tip paid to the block producer."""

    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    def as_tx_fields(self) -> dict:
        return {
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }


#: Fee quote used for one attempt. Quotes are never mutated, escalation derives a new one.
FeeQuote = Union[LegacyFee, DynamicFee]


class _TransactionRequestBase(TypedDict):
    to: ChecksumAddress
    data: HexStr
    value: int
    nonce: int


class TransactionRequest(_TransactionRequestBase, total=False):
    # `from` is a keyword, so these keys are set via item access only.
    gas: int
    gasPrice: int
    maxFeePerGas: int
    maxPriorityFeePerGas: int


@dataclass(frozen=True)
class Attempt:
    number: int
    fee_quote: FeeQuote
    timestamp: float


@dataclass
class SignerContext:
    """Per-run state of one signer identity.

    Created when a run starts, discarded once the run reached a terminal state.
    """

    address: ChecksumAddress
    nonce: int
    balance: int = 0


class SubmissionState(Enum):
    BUILDING = "building"
    BROADCASTING = "broadcasting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    ON_CHAIN_REVERT = "on_chain_revert"
    TERMINAL_FAILURE = "terminal_failure"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        SubmissionState.CONFIRMED,
        SubmissionState.ON_CHAIN_REVERT,
        SubmissionState.TERMINAL_FAILURE,
        SubmissionState.CANCELLED,
    }
)


class FailureKind(Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SIMULATION_REVERT = "simulation_revert"
    ON_CHAIN_REVERT = "on_chain_revert"
    RETRIES_EXHAUSTED = "retries_exhausted"
    SETUP_ERROR = "setup_error"
    CANCELLED = "cancelled"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass(frozen=True)
class Confirmed:
    tx_hash: HexStr
    block_number: int
    signer: Optional[ChecksumAddress] = None
    attempts: List[Attempt] = field(default_factory=list)


@dataclass(frozen=True)
class DryRun:
    nonce: int
    fee_quote: FeeQuote
    signer: Optional[ChecksumAddress] = None
    attempts: List[Attempt] = field(default_factory=list)


@dataclass(frozen=True)
class TerminalFailure:
    kind: FailureKind
    message: str
    signer: Optional[ChecksumAddress] = None
    attempts: List[Attempt] = field(default_factory=list)


SubmissionOutcome = Union[Confirmed, DryRun, TerminalFailure]


@dataclass(frozen=True)
class FeeData:
    """Fee market data as reported by the node. Absent values are ``None``."""

    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
