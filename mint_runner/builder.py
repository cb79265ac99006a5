from typing import TYPE_CHECKING, Any, Optional, Sequence

import structlog
from eth_typing import ChecksumAddress

from mint_runner.constants import GAS_ESTIMATE_BUFFER_DENOMINATOR, GAS_ESTIMATE_BUFFER_NUMERATOR
from mint_runner.exceptions.transactions import ProviderError, SimulationRevert
from mint_runner.types import FeeQuote, TransactionRequest

if TYPE_CHECKING:
    from mint_runner.client import ChainClient
    from mint_runner.utils.contracts import ContractBinding

log = structlog.get_logger(__name__)


def buffered_gas_limit(estimate: int) -> int:
    """Add the safety margin to a gas estimate, rounding down to a whole unit."""
    return estimate * GAS_ESTIMATE_BUFFER_NUMERATOR // GAS_ESTIMATE_BUFFER_DENOMINATOR


class TransactionBuilder:
    """Assemble the transaction request for a single attempt.

    A new request is built for every attempt, so gas estimates and fees always
    reflect the current state of the chain.
    """

    def __init__(self, client: "ChainClient", dry_run: bool = False) -> None:
        self.client = client
        self.dry_run = dry_run

    def build(
        self,
        binding: "ContractBinding",
        call_args: Sequence[Any],
        fee_quote: FeeQuote,
        value_total: int,
        sender: ChecksumAddress,
        nonce: int,
        gas_limit_override: Optional[int] = None,
    ) -> TransactionRequest:
        """Build the request calling `binding` with `call_args`.

        Without `gas_limit_override` the gas limit is estimated and padded by 20%.
        If estimation fails the request carries no gas limit at all, leaving it to
        the transport to estimate at broadcast time.

        In dry-run mode the call is simulated once before returning.

        :raises SimulationRevert: if the dry-run simulation fails.
        """
        request = TransactionRequest(
            to=binding.address,
            data=binding.encode_call(call_args),
            value=value_total,
            nonce=nonce,
        )
        request["from"] = sender  # type: ignore
        request.update(fee_quote.as_tx_fields())  # type: ignore

        if gas_limit_override is not None:
            request["gas"] = gas_limit_override
        else:
            try:
                estimate = self.client.estimate_gas(dict(request))
            except ProviderError as e:
                log.warning(
                    "Gas estimation failed, continuing without gas limit. "
                    "Consider setting GAS_LIMIT manually.",
                    sender=sender,
                    error=str(e),
                )
            else:
                request["gas"] = buffered_gas_limit(estimate)
                log.debug("Estimated gas", estimate=estimate, gas_limit=request["gas"])

        if self.dry_run:
            self.simulate(request)

        return request

    def simulate(self, request: TransactionRequest) -> None:
        """Run `request` as a read-only call.

        :raises SimulationRevert: if the call fails for any reason.
        """
        try:
            self.client.call(dict(request))
        except ProviderError as e:
            raise SimulationRevert(f"Simulation failed: {e}") from e
        log.info("Simulation successful (DRY_RUN)", sender=request.get("from"))
