from mint_runner.utils.configuration.base import ConfigMapping
from mint_runner.utils.configuration.settings import MintConfig, load_raw_settings

__all__ = ["ConfigMapping", "MintConfig", "load_raw_settings"]
