import re
from typing import Any, Dict, List, Optional, Sequence

import structlog
from eth_typing import ABI, ChecksumAddress, HexStr
from web3 import Web3
from web3.exceptions import Web3Exception

from mint_runner.exceptions.config import ConfigurationError
from mint_runner.utils.configuration import MintConfig

log = structlog.get_logger(__name__)


#: ``function <name>(<params>) <modifiers> [returns (<params>)]``
_FUNCTION_SIGNATURE = re.compile(
    r"^function\s+(?P<name>\w+)\s*\((?P<inputs>[^()]*)\)"
    r"(?P<modifiers>[^()]*?)(?:\breturns\s*\((?P<outputs>[^()]*)\))?\s*;?$"
)
_IGNORED_FRAGMENTS = ("event", "error", "constructor", "fallback", "receive")
#: Words that may appear in a parameter but are not part of its ABI type.
_PARAMETER_QUALIFIERS = ("calldata", "memory", "storage", "payable", "indexed")
_STATE_MUTABILITIES = ("pure", "view", "nonpayable", "payable")


def default_mint_abi(function_name: str) -> ABI:
    """ABI fragment for ``function <function_name>(uint256 _count) payable``."""
    return [
        {
            "type": "function",
            "name": function_name,
            "stateMutability": "payable",
            "inputs": [{"name": "_count", "type": "uint256"}],
            "outputs": [],
        }
    ]


def _parse_parameters(parameters: str, signature: str) -> List[Dict[str, str]]:
    parsed = []
    for position, parameter in enumerate(filter(None, map(str.strip, parameters.split(",")))):
        words = [word for word in parameter.split() if word not in _PARAMETER_QUALIFIERS]
        if not 1 <= len(words) <= 2:
            raise ConfigurationError(f"Cannot parse parameter {parameter!r} in {signature!r}")
        abi_type = re.sub(r"^(u?int)(?=$|\[)", r"\g<1>256", words[0])
        name = words[1] if len(words) == 2 else f"arg{position}"
        parsed.append({"name": name, "type": abi_type})
    return parsed


def parse_function_signature(signature: str) -> Dict[str, Any]:
    """Turn a human-readable signature into a JSON ABI entry.

        >>> parse_function_signature("function mint(uint256 _count) payable")["stateMutability"]
        'payable'

    Tuple (struct) parameters are not supported.

    :raises ConfigurationError: if `signature` cannot be parsed.
    """
    match = _FUNCTION_SIGNATURE.match(" ".join(signature.split()))
    if match is None:
        raise ConfigurationError(f"Cannot parse ABI signature {signature!r}")

    modifiers = match.group("modifiers").split()
    mutability = next((word for word in modifiers if word in _STATE_MUTABILITIES), "nonpayable")
    return {
        "type": "function",
        "name": match.group("name"),
        "stateMutability": mutability,
        "inputs": _parse_parameters(match.group("inputs"), signature),
        "outputs": _parse_parameters(match.group("outputs") or "", signature),
    }


def build_abi(config: MintConfig) -> ABI:
    """Return the ABI to use for the mint call.

    `ABI_OVERRIDE` wins if configured. Its entries are either JSON ABI objects or
    human-readable signatures such as ``"function mint(uint256 _count) payable"``.
    Human-readable events and errors are dropped, they are not needed to encode a call.

    :raises ConfigurationError: if an entry is neither an object nor a parsable signature.
    """
    if config.abi_override is None:
        return default_mint_abi(config.mint_func)

    abi = []
    for entry in config.abi_override:
        if isinstance(entry, dict):
            abi.append(entry)
            continue

        keyword = entry.split(None, 1)[0] if isinstance(entry, str) and entry.strip() else None
        if keyword == "function":
            abi.append(parse_function_signature(entry))
        elif keyword in _IGNORED_FRAGMENTS:
            log.debug("Ignoring ABI fragment", fragment=entry)
        else:
            raise ConfigurationError(
                f"ABI_OVERRIDE entries must be ABI objects or function signatures, got {entry!r}"
            )
    return abi


def _coerce_argument(abi_type: str, value: Any) -> Any:
    # Large integers usually arrive as strings, since JSON numbers lose precision.
    if abi_type.startswith(("uint", "int")) and "[" not in abi_type and isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as e:
            raise ConfigurationError(f"Cannot convert {value!r} to {abi_type}") from e
    return value


class ContractBinding:
    """The contract function a submission calls.

    Holds the checksummed contract address, the ABI and the function name, and
    encodes call data through a :mod:`web3` contract object. No network access
    happens here, so a binding can be shared between all signers.
    """

    def __init__(
        self,
        address: ChecksumAddress,
        abi: ABI,
        function_name: str,
        web3: Optional[Web3] = None,
    ) -> None:
        self.address = address
        self.abi = abi
        self.function_name = function_name
        self._contract = (web3 or Web3()).eth.contract(address=address, abi=abi)

        self._function_abis = [
            entry
            for entry in abi
            if entry.get("type", "function") == "function" and entry.get("name") == function_name
        ]
        if not self._function_abis:
            raise ConfigurationError(f"Function {function_name!r} not found in the contract ABI")
        log.debug("Contract binding created", address=address, function=function_name)

    @classmethod
    def from_config(cls, config: MintConfig, web3: Optional[Web3] = None) -> "ContractBinding":
        return cls(config.contract_address, build_abi(config), config.mint_func, web3=web3)

    def _coerce_arguments(self, args: Sequence[Any]) -> List[Any]:
        candidates = [
            abi for abi in self._function_abis if len(abi.get("inputs", [])) == len(args)
        ]
        if len(candidates) != 1:
            # Overloaded or arity mismatch, let web3 sort it out.
            return list(args)
        inputs: List[Dict[str, Any]] = candidates[0]["inputs"]
        return [_coerce_argument(arg_abi["type"], arg) for arg_abi, arg in zip(inputs, args)]

    def encode_call(self, args: Sequence[Any]) -> HexStr:
        """Return the call data for invoking the bound function with `args`.

        :raises ConfigurationError: if the arguments do not match the ABI.
        """
        try:
            data = self._contract.encode_abi(self.function_name, args=self._coerce_arguments(args))
        except (TypeError, ValueError, Web3Exception) as e:
            raise ConfigurationError(
                f"Arguments {list(args)!r} do not match {self.function_name}: {e}"
            ) from e
        return HexStr(data)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.function_name}@{self.address}>"
