from mint_runner.utils.logs import configure_logging

__all__ = ["configure_logging"]
