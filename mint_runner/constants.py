from eth_utils import to_wei

DEFAULT_MINT_FUNC = "mint"
DEFAULT_MINT_AMOUNT = 1
DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_BACKOFF_MS = 2000
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 1.6
DEFAULT_GAS_BUMP_PERCENT = 15
DEFAULT_TX_DELAY_MS = 2000
DEFAULT_PARALLEL = 1
DEFAULT_CONFIRMATION_TIMEOUT = 300  # seconds

#: Gas estimates are multiplied by this ratio before use (+20%).
GAS_ESTIMATE_BUFFER_NUMERATOR = 120
GAS_ESTIMATE_BUFFER_DENOMINATOR = 100

#: Used as gas price when the node reports neither EIP-1559 data nor a gas price.
FALLBACK_GAS_PRICE = to_wei(20, "gwei")

#: Priority fee suggested when the node does not support `eth_maxPriorityFeePerGas`.
FALLBACK_MAX_PRIORITY_FEE = to_wei("1.5", "gwei")

#: Lower bound and random jitter for the pause between two attempts.
MIN_RETRY_DELAY_MS = 250
MAX_RETRY_JITTER_MS = 400

RECEIPT_POLL_INTERVAL = 1.0  # seconds
RPC_REQUEST_TIMEOUT = 30  # seconds

MODE_SINGLE = "single"
MODE_MULTI = "multi"
MODES = (MODE_SINGLE, MODE_MULTI)

TRUTHY_VALUES = ("1", "true", "yes", "on")
