"""Starting fee selection and fee escalation.

The starting quote is picked in this order:

    1. ``MAX_FEE_GWEI`` *and* ``MAX_PRIORITY_GWEI`` configured -> :class:`DynamicFee`
    2. ``GAS_PRICE_GWEI`` configured -> :class:`LegacyFee`
    3. whatever the node reports: EIP-1559 data if available, else its gas price,
       else :data:`FALLBACK_GAS_PRICE`.

Escalated quotes are always derived from the previous one, never mutated in place.
"""
from typing import TYPE_CHECKING

import structlog

from mint_runner.constants import FALLBACK_GAS_PRICE
from mint_runner.types import DynamicFee, FeeQuote, LegacyFee

if TYPE_CHECKING:
    from mint_runner.client import ChainClient
    from mint_runner.utils.configuration import MintConfig

log = structlog.get_logger(__name__)


def get_starting_fee(client: "ChainClient", config: "MintConfig") -> FeeQuote:
    """Return the fee quote for the first attempt of a submission.

    :raises ProviderError:
        if the fee data cannot be fetched. This is not retried, the whole
        submission fails before the first attempt.
    """
    if config.max_fee_override is not None and config.max_priority_fee_override is not None:
        return DynamicFee(
            max_fee_per_gas=config.max_fee_override,
            max_priority_fee_per_gas=config.max_priority_fee_override,
        )
    if config.gas_price_override is not None:
        return LegacyFee(gas_price=config.gas_price_override)

    fee_data = client.fee_data()
    if fee_data.max_fee_per_gas and fee_data.max_priority_fee_per_gas:
        return DynamicFee(
            max_fee_per_gas=fee_data.max_fee_per_gas,
            max_priority_fee_per_gas=fee_data.max_priority_fee_per_gas,
        )
    if not fee_data.gas_price:
        log.debug("Node reported no gas price, using fallback", gas_price=FALLBACK_GAS_PRICE)
    return LegacyFee(gas_price=fee_data.gas_price or FALLBACK_GAS_PRICE)


def bump_value(value: int, percent: int) -> int:
    """Increase `value` by `percent`, rounding down, plus 1 wei.

    The extra wei makes sure the result strictly exceeds the required replacement
    threshold even when the multiplication rounds to a tie.

        >>> bump_value(100, 15)
        116
    """
    return value * (100 + percent) // 100 + 1


def bump_fee(quote: FeeQuote, percent: int) -> FeeQuote:
    """Derive the quote for the next attempt, escalating every fee field."""
    if isinstance(quote, LegacyFee):
        return LegacyFee(gas_price=bump_value(quote.gas_price, percent))
    return DynamicFee(
        max_fee_per_gas=bump_value(quote.max_fee_per_gas, percent),
        max_priority_fee_per_gas=bump_value(quote.max_priority_fee_per_gas, percent),
    )
