import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog
import yaml
from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address, to_wei

from mint_runner.constants import (
    DEFAULT_CONFIRMATION_TIMEOUT,
    DEFAULT_GAS_BUMP_PERCENT,
    DEFAULT_MINT_AMOUNT,
    DEFAULT_MINT_FUNC,
    DEFAULT_PARALLEL,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_MS,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_TX_DELAY_MS,
    MODE_MULTI,
    MODE_SINGLE,
)
from mint_runner.exceptions.config import ConfigurationError
from mint_runner.utils.configuration.base import ConfigMapping

log = structlog.get_logger(__name__)

#: Every setting understood by the runner. Values are read from the environment
#: (or a config file) under exactly these names.
SETTING_KEYS = (
    "RPC_URL",
    "CHAIN_ID",
    "CONTRACT_ADDRESS",
    "MINT_FUNC",
    "ABI_OVERRIDE",
    "MINT_ARGS",
    "MINT_PRICE",
    "MINT_AMOUNT",
    "GAS_LIMIT",
    "RETRY_ATTEMPTS",
    "RETRY_BACKOFF_MS",
    "RETRY_BACKOFF_MULTIPLIER",
    "GAS_BUMP_PERCENT",
    "GAS_PRICE_GWEI",
    "MAX_FEE_GWEI",
    "MAX_PRIORITY_GWEI",
    "MODE",
    "PRIVATE_KEY",
    "PRIVATE_KEYS",
    "TX_DELAY_MS",
    "PARALLEL",
    "DRY_RUN",
    "DEBUG",
    "CONFIRMATION_TIMEOUT",
)

_MODE_ALIASES = {"single": MODE_SINGLE, "simple": MODE_SINGLE, "multi": MODE_MULTI}


def load_raw_settings(
    environ: Optional[Mapping[str, str]] = None, config_file: Optional[Path] = None
) -> Dict[str, Any]:
    """Collect the raw settings.

    Values from the YAML `config_file` are used as a base and overridden by any
    setting present in `environ` (defaults to :data:`os.environ`). Unknown keys
    in either source are ignored.

    Example config file::

        >mint.yaml
        RPC_URL: http://localhost:8545
        CONTRACT_ADDRESS: "0x..."
        MINT_ARGS: [2, "0x00"]
        PARALLEL: 3

    :raises ConfigurationError: if the file cannot be parsed or is not a mapping.
    """
    environ = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}

    if config_file is not None:
        try:
            loaded = yaml.safe_load(Path(config_file).read_text())
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Config file {config_file} is not valid YAML: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Config file {config_file} cannot be read: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {config_file} must contain a mapping")
        raw.update({key: value for key, value in loaded.items() if key in SETTING_KEYS})

    raw.update({key: environ[key] for key in SETTING_KEYS if environ.get(key) not in (None, "")})
    return raw


def _gwei_to_wei(settings: ConfigMapping, key: str) -> Optional[int]:
    value = settings.get_str(key)
    if value is None:
        return None
    try:
        amount = Decimal(value)
    except InvalidOperation as e:
        raise ConfigurationError(f"{key} must be a decimal number of gwei, got {value!r}") from e
    settings.assert_option(amount >= 0, f"{key} must not be negative")
    return int(to_wei(amount, "gwei"))


@dataclass(frozen=True)
class MintConfig:
    """The complete, validated runner configuration.

    Constructed once via :meth:`from_mapping` and handed explicitly to every
    component. Nothing downstream reads the environment.

    Fee overrides are stored in wei. `abi_override` and `mint_args` keep their
    decoded JSON form.
    """

    rpc_url: str
    contract_address: ChecksumAddress
    private_keys: Tuple[str, ...] = field(repr=False)
    chain_id: Optional[int] = None
    mode: str = MODE_SINGLE
    mint_func: str = DEFAULT_MINT_FUNC
    abi_override: Optional[Tuple[Any, ...]] = None
    mint_args: Optional[Tuple[Any, ...]] = None
    mint_price: str = "0"
    price_wei: int = 0
    mint_amount: int = DEFAULT_MINT_AMOUNT
    gas_limit: Optional[int] = None
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_backoff_ms: float = DEFAULT_RETRY_BACKOFF_MS
    retry_backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER
    gas_bump_percent: int = DEFAULT_GAS_BUMP_PERCENT
    gas_price_override: Optional[int] = None
    max_fee_override: Optional[int] = None
    max_priority_fee_override: Optional[int] = None
    tx_delay_ms: int = DEFAULT_TX_DELAY_MS
    parallel: int = DEFAULT_PARALLEL
    dry_run: bool = False
    debug: bool = False
    confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT

    @property
    def value_total(self) -> int:
        """Value sent with the call: price per unit times the configured quantity.

        Custom `mint_args` do not change this, the quantity always comes from
        `MINT_AMOUNT`.
        """
        return self.price_wei * self.mint_amount

    @property
    def call_args(self) -> List[Any]:
        if self.mint_args is not None:
            return list(self.mint_args)
        return [self.mint_amount]

    @property
    def is_multi(self) -> bool:
        return self.mode == MODE_MULTI

    @classmethod
    def from_mapping(cls, raw_settings: Mapping) -> "MintConfig":
        """Build and validate the configuration from raw settings.

        :raises ConfigurationError: if a required setting is missing or any value is invalid.
        """
        settings = ConfigMapping(raw_settings)
        assert_option = settings.assert_option

        rpc_url = settings.get_str("RPC_URL")
        assert_option(rpc_url, "RPC_URL is not set")

        contract_address = settings.get_str("CONTRACT_ADDRESS")
        assert_option(contract_address, "CONTRACT_ADDRESS is not set")
        assert_option(
            is_address(contract_address), "CONTRACT_ADDRESS is invalid (checksum failed)"
        )

        mode_name = (settings.get_str("MODE") or MODE_SINGLE).lower()
        assert_option(mode_name in _MODE_ALIASES, f"MODE must be single or multi, not {mode_name}")
        mode = _MODE_ALIASES[mode_name]

        if mode == MODE_MULTI:
            private_keys = settings.get_csv("PRIVATE_KEYS")
            assert_option(private_keys, "MODE=multi requires PRIVATE_KEYS (comma separated)")
        else:
            private_key = settings.get_str("PRIVATE_KEY")
            assert_option(private_key, "PRIVATE_KEY is not set for MODE=single")
            private_keys = [private_key]

        mint_amount = settings.get_int("MINT_AMOUNT", DEFAULT_MINT_AMOUNT)
        assert_option(mint_amount > 0, "MINT_AMOUNT must be > 0")

        mint_price = settings.get_str("MINT_PRICE", "0")
        try:
            price_wei = int(to_wei(Decimal(mint_price), "ether"))
        except (InvalidOperation, ValueError) as e:
            raise ConfigurationError(
                f"MINT_PRICE must be an ether amount, got {mint_price!r}"
            ) from e

        gas_limit = settings.get_int("GAS_LIMIT")
        assert_option(gas_limit is None or gas_limit > 0, "GAS_LIMIT must be > 0")

        retry_attempts = settings.get_int("RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS)
        assert_option(retry_attempts >= 1, "RETRY_ATTEMPTS must be >= 1")

        retry_backoff_ms = settings.get_float("RETRY_BACKOFF_MS", DEFAULT_RETRY_BACKOFF_MS)
        backoff_multiplier = settings.get_float(
            "RETRY_BACKOFF_MULTIPLIER", DEFAULT_RETRY_BACKOFF_MULTIPLIER
        )
        assert_option(retry_backoff_ms >= 0, "RETRY_BACKOFF_MS must not be negative")
        assert_option(backoff_multiplier >= 1, "RETRY_BACKOFF_MULTIPLIER must be >= 1")

        gas_bump_percent = settings.get_int("GAS_BUMP_PERCENT", DEFAULT_GAS_BUMP_PERCENT)
        assert_option(gas_bump_percent >= 0, "GAS_BUMP_PERCENT must not be negative")

        confirmation_timeout = settings.get_float(
            "CONFIRMATION_TIMEOUT", DEFAULT_CONFIRMATION_TIMEOUT
        )
        assert_option(confirmation_timeout > 0, "CONFIRMATION_TIMEOUT must be > 0")

        abi_override = settings.get_json_array("ABI_OVERRIDE")
        mint_args = settings.get_json_array("MINT_ARGS")

        config = cls(
            rpc_url=rpc_url,
            chain_id=settings.get_int("CHAIN_ID"),
            contract_address=to_checksum_address(contract_address),
            mint_func=settings.get_str("MINT_FUNC", DEFAULT_MINT_FUNC),
            abi_override=tuple(abi_override) if abi_override is not None else None,
            mint_args=tuple(mint_args) if mint_args is not None else None,
            mint_price=mint_price,
            price_wei=price_wei,
            mint_amount=mint_amount,
            gas_limit=gas_limit,
            retry_attempts=retry_attempts,
            retry_backoff_ms=retry_backoff_ms,
            retry_backoff_multiplier=backoff_multiplier,
            gas_bump_percent=gas_bump_percent,
            gas_price_override=_gwei_to_wei(settings, "GAS_PRICE_GWEI"),
            max_fee_override=_gwei_to_wei(settings, "MAX_FEE_GWEI"),
            max_priority_fee_override=_gwei_to_wei(settings, "MAX_PRIORITY_GWEI"),
            mode=mode,
            private_keys=tuple(private_keys),
            tx_delay_ms=max(0, settings.get_int("TX_DELAY_MS", DEFAULT_TX_DELAY_MS)),
            parallel=max(1, settings.get_int("PARALLEL", DEFAULT_PARALLEL)),
            dry_run=settings.get_bool("DRY_RUN"),
            debug=settings.get_bool("DEBUG"),
            confirmation_timeout=confirmation_timeout,
        )
        log.debug("Configuration loaded", config=config)
        return config
