"""Submission state machine for a single signer.

A run walks through the following states::

    BUILDING -> BROADCASTING -> AWAITING_CONFIRMATION -> CONFIRMED
        ^            |                  |            \\-> ON_CHAIN_REVERT
        |            v                  v
        +------ retryable failure, escalated fee ----> TERMINAL_FAILURE

plus ``CANCELLED``, reachable from any non-terminal state once the shared cancel
event is set.

The nonce is pinned once, at the start of a run, from the ``pending`` transaction
count. Every retry reuses it, so later attempts replace the earlier transaction
on the network instead of queueing behind it. Since a replaced transaction can
still win the race, confirmation polling covers every hash broadcast so far.
Attempts of one run are strictly sequential.
"""
import random
import time
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

import structlog
from eth_account.signers.local import LocalAccount
from eth_typing import HexStr
from eth_utils import from_wei
from gevent.event import Event
from web3.types import TxReceipt

from mint_runner.builder import TransactionBuilder
from mint_runner.classifier import classify_error
from mint_runner.constants import MAX_RETRY_JITTER_MS, MIN_RETRY_DELAY_MS, RECEIPT_POLL_INTERVAL
from mint_runner.exceptions.transactions import (
    ConfirmationTimeout,
    InvalidStateTransition,
    OnChainRevert,
    ProviderError,
    SimulationRevert,
)
from mint_runner.fees import bump_fee, get_starting_fee
from mint_runner.types import (
    Attempt,
    Confirmed,
    DryRun,
    FailureKind,
    FeeQuote,
    SignerContext,
    SubmissionOutcome,
    SubmissionState,
    TerminalFailure,
)

if TYPE_CHECKING:
    from mint_runner.client import ChainClient
    from mint_runner.utils.configuration import MintConfig
    from mint_runner.utils.contracts import ContractBinding

log = structlog.get_logger(__name__)

INSUFFICIENT_FUNDS_MESSAGE = "Insufficient funds: balance too low to pay for gas and value."


def retry_delay(
    attempt_index: int, backoff_ms: float, multiplier: float, jitter_ms: Optional[float] = None
) -> float:
    """Return the pause before the next attempt, in seconds.

    The backoff grows as ``backoff_ms * multiplier ** attempt_index``, is never
    shorter than :data:`MIN_RETRY_DELAY_MS`, and gets a small random jitter on top.
    """
    if jitter_ms is None:
        jitter_ms = random.uniform(0, MAX_RETRY_JITTER_MS)
    backoff = backoff_ms * multiplier ** attempt_index
    return (max(MIN_RETRY_DELAY_MS, backoff) + jitter_ms) / 1000


class Submission:
    """Bookkeeping for one run: the signer, the attempt history and the current state."""

    def __init__(self, signer: SignerContext) -> None:
        self.signer = signer
        self.attempts: List[Attempt] = []
        self.state = SubmissionState.BUILDING
        self.state_history: List[SubmissionState] = [self.state]
        #: Hashes of every broadcast of this run, oldest first. They all share one nonce,
        #: so at most one of them can be mined.
        self.tx_hashes: List[HexStr] = []

    def transition(self, new_state: SubmissionState) -> None:
        if self.state.is_terminal:
            raise InvalidStateTransition(
                f"Cannot move from terminal state {self.state.value} to {new_state.value}"
            )
        log.debug(
            "Submission state changed",
            signer=self.signer.address,
            old=self.state.value,
            new=new_state.value,
        )
        self.state = new_state
        self.state_history.append(new_state)

    def start_attempt(self, fee_quote: FeeQuote) -> Attempt:
        if self.state is not SubmissionState.BUILDING:
            self.transition(SubmissionState.BUILDING)
        attempt = Attempt(
            number=len(self.attempts) + 1, fee_quote=fee_quote, timestamp=time.time()
        )
        self.attempts.append(attempt)
        return attempt

    def fail(self, kind: FailureKind, message: str) -> TerminalFailure:
        if kind is FailureKind.ON_CHAIN_REVERT:
            self.transition(SubmissionState.ON_CHAIN_REVERT)
        elif kind is FailureKind.CANCELLED:
            self.transition(SubmissionState.CANCELLED)
        else:
            self.transition(SubmissionState.TERMINAL_FAILURE)
        return TerminalFailure(
            kind=kind, message=message, signer=self.signer.address, attempts=list(self.attempts)
        )


class RetryEngine:
    """Drive submissions through build, broadcast and confirmation.

    One engine may serve many signers concurrently: all per-run state lives in a
    :class:`Submission`, the engine itself only holds shared collaborators.

    Setting `cancel_event` stops every run at its next wait (backoff pause or
    receipt polling) with a ``CANCELLED`` outcome.
    """

    def __init__(
        self,
        client: "ChainClient",
        config: "MintConfig",
        cancel_event: Optional[Event] = None,
        builder: Optional[TransactionBuilder] = None,
    ) -> None:
        self.client = client
        self.config = config
        self.cancel_event = cancel_event if cancel_event is not None else Event()
        self.builder = builder or TransactionBuilder(client, dry_run=config.dry_run)

    def run(self, account: LocalAccount, binding: "ContractBinding") -> SubmissionOutcome:
        """Submit the configured call from `account` and return its outcome.

        Never raises for failures the engine knows how to classify, those end up
        as a :class:`TerminalFailure`.
        """
        address = account.address
        if self.cancel_event.is_set():
            return TerminalFailure(
                kind=FailureKind.CANCELLED, message="Submission cancelled", signer=address
            )

        try:
            fee_quote = get_starting_fee(self.client, self.config)
            balance = self.client.balance(address)
            nonce = self.client.transaction_count(address, "pending")
        except ProviderError as e:
            log.error("Submission setup failed", signer=address, error=str(e))
            return TerminalFailure(kind=FailureKind.SETUP_ERROR, message=str(e), signer=address)

        log.info("Signer ready", signer=address, balance=f"{from_wei(balance, 'ether')} ETH")
        log.debug("Using pinned nonce", signer=address, nonce=nonce)
        submission = Submission(SignerContext(address=address, nonce=nonce, balance=balance))

        while True:
            if self.cancel_event.is_set():
                return self._cancelled(submission)

            attempt = submission.start_attempt(fee_quote)
            try:
                request = self.builder.build(
                    binding,
                    self.config.call_args,
                    fee_quote,
                    self.config.value_total,
                    sender=address,
                    nonce=nonce,
                    gas_limit_override=self.config.gas_limit,
                )

                if self.config.dry_run:
                    log.info("DRY_RUN: transaction not broadcast", signer=address, nonce=nonce)
                    return DryRun(
                        nonce=nonce,
                        fee_quote=fee_quote,
                        signer=address,
                        attempts=list(submission.attempts),
                    )

                submission.transition(SubmissionState.BROADCASTING)
                tx_hash = self.client.send_transaction(account, dict(request))
                submission.tx_hashes.append(tx_hash)
                log.info(
                    "Transaction sent",
                    signer=address,
                    tx_hash=tx_hash,
                    attempt=attempt.number,
                    nonce=nonce,
                )

                submission.transition(SubmissionState.AWAITING_CONFIRMATION)
                mined = self._await_confirmation(submission.tx_hashes)
                if mined is None:
                    return self._cancelled(submission)
                return self._confirmed(submission, *mined)

            except SimulationRevert as e:
                log.error("Simulation reverted, not retrying", signer=address, error=str(e))
                return submission.fail(FailureKind.SIMULATION_REVERT, str(e))

            except OnChainRevert as e:
                log.error("Transaction reverted on chain", signer=address, error=str(e))
                return submission.fail(FailureKind.ON_CHAIN_REVERT, str(e))

            except ProviderError as e:
                classification = classify_error(e)
                log.warning(
                    "Attempt failed",
                    signer=address,
                    attempt=attempt.number,
                    error=classification.message,
                    flags=[flag.value for flag in classification.flags],
                )

                exhausted = attempt.number >= self.config.retry_attempts
                if submission.tx_hashes and (
                    classification.nonce_too_low or classification.insufficient_funds or exhausted
                ):
                    # An earlier broadcast may have been mined in the meantime, which
                    # would explain the error.
                    try:
                        mined = self._find_mined(submission.tx_hashes)
                    except OnChainRevert as revert:
                        log.error(
                            "Transaction reverted on chain", signer=address, error=str(revert)
                        )
                        return submission.fail(FailureKind.ON_CHAIN_REVERT, str(revert))
                    except ProviderError as lookup_error:
                        log.debug("Receipt lookup failed", signer=address, error=str(lookup_error))
                        mined = None
                    if mined is not None:
                        return self._confirmed(submission, *mined)

                if classification.insufficient_funds:
                    return submission.fail(
                        FailureKind.INSUFFICIENT_FUNDS, INSUFFICIENT_FUNDS_MESSAGE
                    )
                if exhausted:
                    log.error("Retry attempts exhausted", signer=address, attempts=attempt.number)
                    return submission.fail(FailureKind.RETRIES_EXHAUSTED, str(e))
                if classification.nonce_too_low:
                    # TODO: decide whether a nonce too low error should re-pin the nonce
                    # instead of escalating the fee on the same one.
                    log.warning("Nonce too low, retrying with the pinned nonce", nonce=nonce)

                fee_quote = bump_fee(fee_quote, self.config.gas_bump_percent)
                delay = retry_delay(
                    attempt.number - 1,
                    self.config.retry_backoff_ms,
                    self.config.retry_backoff_multiplier,
                )
                if classification.is_underpriced:
                    log.info(
                        "Underpriced, retrying sooner with higher gas",
                        signer=address,
                        delay=round(delay, 3),
                        fee=fee_quote,
                    )
                else:
                    log.info(
                        "Retrying with higher gas",
                        signer=address,
                        delay=round(delay, 3),
                        fee=fee_quote,
                    )

                if self._pause(delay):
                    return self._cancelled(submission)

    def _find_mined(self, tx_hashes: Sequence[HexStr]) -> Optional[Tuple[HexStr, TxReceipt]]:
        """Look up the receipts of `tx_hashes`, newest first.

        A receipt without a ``status`` field (pre-Byzantium chains) counts as success.

        :returns: the mined hash and its receipt, or ``None`` if none is mined yet.
        :raises OnChainRevert: if the mined transaction reports a failed status.
        """
        for tx_hash in reversed(tx_hashes):
            receipt = self.client.get_receipt(tx_hash)
            if receipt is None or receipt.get("blockNumber") is None:
                continue
            if receipt.get("status", 1) == 0:
                raise OnChainRevert(f"Receipt status 0 (reverted). Tx: {tx_hash}")
            return tx_hash, receipt
        return None

    def _await_confirmation(
        self, tx_hashes: Sequence[HexStr]
    ) -> Optional[Tuple[HexStr, TxReceipt]]:
        """Poll until one of `tx_hashes` is mined.

        All hashes of a run are polled, since a replaced transaction may still be
        the one that makes it into a block.

        :returns: the mined hash and its receipt, or ``None`` if the run was cancelled
            while waiting.
        :raises OnChainRevert: if the receipt reports a failed status.
        :raises ConfirmationTimeout: if no receipt arrived within the configured timeout.
        """
        deadline = time.monotonic() + self.config.confirmation_timeout
        while True:
            mined = self._find_mined(tx_hashes)
            if mined is not None:
                return mined

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ConfirmationTimeout(f"Timeout waiting for receipt of {tx_hashes[-1]}")
            if self._pause(min(RECEIPT_POLL_INTERVAL, remaining)):
                return None

    def _pause(self, seconds: float) -> bool:
        """Sleep for `seconds`. Returns ``True`` if the run got cancelled meanwhile."""
        return self.cancel_event.wait(timeout=seconds)

    def _confirmed(
        self, submission: Submission, tx_hash: HexStr, receipt: TxReceipt
    ) -> Confirmed:
        submission.transition(SubmissionState.CONFIRMED)
        log.info(
            "Transaction confirmed",
            signer=submission.signer.address,
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
        )
        return Confirmed(
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            signer=submission.signer.address,
            attempts=list(submission.attempts),
        )

    def _cancelled(self, submission: Submission) -> TerminalFailure:
        log.warning("Submission cancelled", signer=submission.signer.address)
        return submission.fail(FailureKind.CANCELLED, "Submission cancelled")
