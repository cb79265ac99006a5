from typing import Dict, Optional, Type

from mint_runner.types import FailureKind, TerminalFailure


class MintRunnerError(Exception):
    exit_code = 1


class ProviderError(MintRunnerError):
    """There was an error while talking to the JSON-RPC node.

    This is raised from the underlying :mod:`web3` or :mod:`requests` exception,
    which stays available as ``__cause__``. Its message is what the error classifier
    looks at, so we keep the original text instead of rephrasing it.
    """

    def __init__(self, reason=None):
        reason = reason or "Error communicating with the RPC node!"
        super(ProviderError, self).__init__(str(reason))


class ConfirmationTimeout(ProviderError):
    """No receipt arrived in time. Treated like any other transient transport failure."""


class SubmissionFailed(MintRunnerError):
    """A submission ended in a terminal failure.

    In single mode the first terminal failure is fatal for the process, and the
    outcome is raised as the matching subclass via :meth:`from_outcome`.
    """

    def __init__(self, message: str, outcome: Optional[TerminalFailure] = None):
        self.outcome = outcome
        super(SubmissionFailed, self).__init__(message)

    @classmethod
    def from_outcome(cls, outcome: TerminalFailure) -> "SubmissionFailed":
        exception_class = _FAILURE_KIND_TO_EXCEPTION.get(outcome.kind, SubmissionFailed)
        return exception_class(outcome.message, outcome=outcome)


class SimulationRevert(SubmissionFailed):
    """The read-only pre-flight call (dry-run) reverted.

    The rejection does not depend on fees or the nonce, so it is never retried.
    """


class InsufficientFunds(SubmissionFailed):
    """The signer cannot pay for gas and value."""


class OnChainRevert(SubmissionFailed):
    """The transaction was mined, but its receipt reports a failed status.

    This is always terminal, even though some reverts are caused by a race with a
    competing transaction rather than a deterministic condition.
    """


class SubmissionCancelled(SubmissionFailed):
    """The run was cancelled while waiting for a receipt or between attempts."""


class InvalidStateTransition(MintRunnerError):
    """A submission was asked to leave a terminal state."""


_FAILURE_KIND_TO_EXCEPTION: Dict[FailureKind, Type[SubmissionFailed]] = {
    FailureKind.SIMULATION_REVERT: SimulationRevert,
    FailureKind.INSUFFICIENT_FUNDS: InsufficientFunds,
    FailureKind.ON_CHAIN_REVERT: OnChainRevert,
    FailureKind.CANCELLED: SubmissionCancelled,
}
