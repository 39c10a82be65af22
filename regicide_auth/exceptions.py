"""Exceptions."""


class ConfigurationError(RuntimeError):
    """Raised when a required service parameter is missing or invalid."""


class ValidationError(ValueError):
    """Malformed input, detected before any I/O."""


class StoreError(RuntimeError):
    """The key-value store is unreachable or failed unexpectedly."""


class ConditionFailed(StoreError):
    """A conditional write was rejected by the key-value store."""


class PartialWriteError(StoreError):
    """A multi-item write did not converge before the deadline."""


class EncodingError(RuntimeError):
    """Failed to build a signed token."""


class FormatError(ValueError):
    """A token string is malformed."""


class Unavailable(StoreError):
    """The key-value store is throttling requests or cannot be reached."""
