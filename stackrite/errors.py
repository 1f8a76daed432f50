"""Exceptions raised by stackrite.

Only usage errors ever reach the caller. Lookups that the host cannot answer
raise MetadataError internally and the formatters degrade to a simpler
rendering instead.
"""


class StackCleanerError(Exception):
    """Base class for all stackrite errors."""


class ArgumentError(StackCleanerError, TypeError):
    """A required argument was None or of a kind that cannot be formatted."""


class SinkError(StackCleanerError, ValueError):
    """The output sink does not accept writes."""


class ConfigurationError(StackCleanerError, ValueError):
    """An option was given a value it does not accept."""


class ConfigurationFrozenError(ConfigurationError):
    def __init__(self, message: str = "Configuration is frozen."):
        super().__init__(message)


class MetadataError(StackCleanerError):
    """A descriptor lookup failed (ambiguous match, inaccessible module)."""
