import json
from collections.abc import Mapping
from typing import Any, List, Optional, Union

import structlog

from mint_runner.constants import TRUTHY_VALUES
from mint_runner.exceptions.config import ConfigurationError

log = structlog.get_logger(__name__)


class ConfigMapping(Mapping):
    """Read-only view over raw, string-typed settings.

    Values typically come from environment variables, so everything arrives as a
    string and is converted by the typed accessors below. Empty strings are
    treated like absent keys.
    """

    CONFIGURATION_ERROR = ConfigurationError

    def __init__(self, raw_settings: Optional[Mapping]):
        self.dict = dict(raw_settings or {})

    def __getitem__(self, item):
        return self.dict[item]

    def __iter__(self):
        return iter(self.dict)

    def __len__(self):
        return len(self.dict)

    def __eq__(self, other):
        if isinstance(other, dict):
            return self.dict == other
        elif isinstance(other, ConfigMapping):
            return self.dict == other.dict
        raise TypeError(f"Incomparable types! {self.__class__.__qualname__} and {type(other)}")

    def __str__(self):
        return str(self.dict)

    def __repr__(self):
        return f"{self.__class__.__qualname__}({sorted(self.dict)})"

    @classmethod
    def assert_option(cls, expression, err: Optional[Union[str, Exception]] = None):
        """Wrap `assert` to raise a ConfigurationError instead of an AssertionError."""
        try:
            assert expression
        except AssertionError as e:
            if err is None or isinstance(err, str):
                raise cls.CONFIGURATION_ERROR(err) from e
            else:
                exception = err
            raise exception from e

    def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.dict.get(key)
        if value is None:
            return default
        value = str(value).strip()
        return value or default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get_str(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as e:
            raise self.CONFIGURATION_ERROR(f"{key} must be an integer, got {value!r}") from e

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        value = self.get_str(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as e:
            raise self.CONFIGURATION_ERROR(f"{key} must be a number, got {value!r}") from e

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_str(key)
        if value is None:
            return default
        return value.lower() in TRUTHY_VALUES

    def get_csv(self, key: str) -> List[str]:
        """Split a comma separated value, dropping blank items."""
        value = self.get_str(key)
        if value is None:
            return []
        return [item.strip() for item in value.split(",") if item.strip()]

    def get_json_array(self, key: str) -> Optional[List[Any]]:
        """Parse a JSON encoded array.

        :raises ConfigurationError: if the value is not valid JSON or not an array.
        """
        # Config files may already hold a parsed list.
        if isinstance(self.dict.get(key), list):
            return list(self.dict[key])
        value = self.get_str(key)
        if value is None:
            return None
        try:
            loaded = json.loads(value)
        except json.JSONDecodeError as e:
            raise self.CONFIGURATION_ERROR(f"{key} invalid JSON: {e}") from e
        self.assert_option(isinstance(loaded, list), f"{key} must be a JSON array")
        return loaded
