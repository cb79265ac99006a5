"""Fan out submissions over many signers.

Signers are processed in sequential batches of at most ``PARALLEL`` members. All
runs of a batch execute concurrently on a bounded :class:`gevent.pool.Pool`, and
the next batch only starts once every run of the current one has settled. Within
a batch, member ``i`` starts ``i * TX_DELAY_MS`` after the first one so the node
does not get hit by all nonce queries at once.

Signers own independent accounts and nonces, so runs never share mutable state
besides the (read-mostly) :class:`~mint_runner.client.ChainClient`.
"""
from itertools import chain, islice
from typing import Iterable, Iterator, List, TypeVar

import structlog
from eth_account.signers.local import LocalAccount
from gevent.pool import Pool

from mint_runner.engine import RetryEngine
from mint_runner.types import FailureKind, SubmissionOutcome, TerminalFailure
from mint_runner.utils.contracts import ContractBinding

log = structlog.get_logger(__name__)

T = TypeVar("T")


def iter_batches(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive chunks of `items` with at most `size` members each."""
    if size < 1:
        raise ValueError(f"Batch size must be >= 1, not {size}")
    iterator = iter(items)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


class DispatchCoordinator:
    def __init__(
        self, engine: RetryEngine, binding: ContractBinding, parallel: int, tx_delay_ms: int
    ) -> None:
        self.engine = engine
        self.binding = binding
        self.parallel = max(1, parallel)
        self.tx_delay = max(0, tx_delay_ms) / 1000

    @property
    def cancel_event(self):
        return self.engine.cancel_event

    def dispatch(self, accounts: Iterable[LocalAccount]) -> List[SubmissionOutcome]:
        """Run a submission for each of `accounts`.

        A failing run never affects its siblings or later batches: its failure is
        logged and recorded as a :class:`TerminalFailure`. Once the cancel event is
        set no further batch is started, and its signers are recorded as ``CANCELLED``.

        :returns: one outcome per account, in input order.
        """
        outcomes: List[SubmissionOutcome] = []

        batches = iter_batches(accounts, self.parallel)
        for batch_number, batch in enumerate(batches, start=1):
            if batch_number > 1 and self.tx_delay:
                self.cancel_event.wait(timeout=self.tx_delay)
            if self.cancel_event.is_set():
                log.warning("Dispatch cancelled, skipping remaining signers", batch=batch_number)
                for account in chain(batch, *batches):
                    outcomes.append(
                        TerminalFailure(
                            kind=FailureKind.CANCELLED,
                            message="Submission cancelled",
                            signer=account.address,
                        )
                    )
                break

            log.info("Starting batch", batch=batch_number, size=len(batch))
            pool = Pool(size=self.parallel)
            greenlets = [
                pool.spawn(self._run_signer, account, position)
                for position, account in enumerate(batch)
            ]
            pool.join()
            outcomes.extend(greenlet.value for greenlet in greenlets)
            log.debug("Batch settled", batch=batch_number)

        return outcomes

    def _run_signer(self, account: LocalAccount, position: int) -> SubmissionOutcome:
        try:
            if position and self.tx_delay:
                # Cancellation is picked up by the engine right away.
                self.cancel_event.wait(timeout=position * self.tx_delay)
            outcome = self.engine.run(account, self.binding)
        except Exception as e:
            log.exception("Signer run crashed", signer=account.address)
            return TerminalFailure(
                kind=FailureKind.UNEXPECTED_ERROR, message=str(e), signer=account.address
            )

        if isinstance(outcome, TerminalFailure):
            log.error(
                "Signer submission failed",
                signer=account.address,
                kind=outcome.kind.value,
                error=outcome.message,
            )
        return outcome
