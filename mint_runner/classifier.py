"""Best-effort classification of node and transport error messages.

Nodes and providers do not agree on error codes, so we match on the lower-cased
message text instead. The phrase table below is the complete vocabulary we know
about. Anything not listed classifies with all flags unset, which the retry engine
handles as a generic, retryable failure. Supporting a new provider means adding
its phrasing here, not changing the engine.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple, Union


class ErrorFlag(Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    UNDERPRICED = "underpriced"
    NONCE_TOO_LOW = "nonce_too_low"
    REPLACEMENT_UNDERPRICED = "replacement_underpriced"
    UNPREDICTABLE_GAS = "unpredictable_gas"
    USER_DENIED = "user_denied"


#: Known phrasings per flag, all lower case. A flag is set if any of its phrases
#: occurs in the message.
ERROR_PHRASES: Dict[ErrorFlag, Tuple[str, ...]] = {
    ErrorFlag.INSUFFICIENT_FUNDS: ("insufficient funds",),
    ErrorFlag.UNDERPRICED: (
        "underpriced",
        "max fee per gas less than block base fee",
        "fee too low",
    ),
    ErrorFlag.NONCE_TOO_LOW: ("nonce too low", "already been used"),
    ErrorFlag.REPLACEMENT_UNDERPRICED: ("replacement transaction underpriced",),
    ErrorFlag.UNPREDICTABLE_GAS: ("unpredictable gas", "cannot estimate gas"),
    ErrorFlag.USER_DENIED: ("user denied",),
}


@dataclass(frozen=True)
class ErrorClassification:
    message: str
    insufficient_funds: bool = False
    underpriced: bool = False
    nonce_too_low: bool = False
    replacement_underpriced: bool = False
    unpredictable_gas: bool = False
    user_denied: bool = False

    @property
    def flags(self) -> Tuple[ErrorFlag, ...]:
        return tuple(flag for flag in ErrorFlag if getattr(self, flag.value))

    @property
    def is_underpriced(self) -> bool:
        return self.underpriced or self.replacement_underpriced


def classify_error(failure: Union[BaseException, str, None]) -> ErrorClassification:
    """Map a raised failure (or its message) to semantic flags."""
    message = str(failure if failure is not None else "").lower()
    flags = {
        flag.value: any(phrase in message for phrase in phrases)
        for flag, phrases in ERROR_PHRASES.items()
    }
    return ErrorClassification(message=message, **flags)
