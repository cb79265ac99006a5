from mint_runner.exceptions.config import ChainIdMismatch, ConfigurationError
from mint_runner.exceptions.transactions import (
    ConfirmationTimeout,
    InsufficientFunds,
    InvalidStateTransition,
    MintRunnerError,
    OnChainRevert,
    ProviderError,
    SimulationRevert,
    SubmissionCancelled,
    SubmissionFailed,
)

__all__ = [
    "ChainIdMismatch",
    "ConfigurationError",
    "ConfirmationTimeout",
    "InsufficientFunds",
    "InvalidStateTransition",
    "MintRunnerError",
    "OnChainRevert",
    "ProviderError",
    "SimulationRevert",
    "SubmissionCancelled",
    "SubmissionFailed",
]
