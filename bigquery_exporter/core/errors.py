"""
Exception types raised by the exporter.

Every error after startup is scoped to a single query file or a single
metric; the refresh loop logs it and moves on to the next one.
"""


class ExporterError(Exception):
    """Base class for exporter errors."""
    pass


class ConfigurationError(ExporterError):
    """Invalid flags or environment, or a backing client that cannot be built."""
    pass


class StatError(ExporterError):
    """A query file could not be stat'ed. Retried on the next cycle."""

    def __init__(self, filename: str, cause: Exception):
        super().__init__(f"failed to stat {filename!r}: {cause}")
        self.filename = filename
        self.cause = cause


class ParseError(ExporterError):
    """A query file could not be read."""

    def __init__(self, filename: str, cause: Exception):
        super().__init__(f"failed to read {filename!r}: {cause}")
        self.filename = filename
        self.cause = cause


class RunnerError(ExporterError):
    """A query failed to execute against the warehouse."""
    pass


class RegistrationError(ExporterError):
    """The exposition layer rejected a collector."""

    def __init__(self, metric_name: str, cause: Exception | None = None):
        message = f"failed to register {metric_name!r}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.metric_name = metric_name
        self.cause = cause


class UnregistrationError(ExporterError):
    """A stale collector could not be removed before being replaced."""

    def __init__(self, metric_name: str):
        super().__init__(f"failed to unregister {metric_name!r}")
        self.metric_name = metric_name
