class ConfigurationError(ValueError):
    """Generic error thrown if a required setting is missing or invalid.

    Always raised before any network I/O takes place.
    """

    exit_code = 1


class ChainIdMismatch(ConfigurationError):
    """The node we connected to reports a different chain id than configured."""
