class MetricsError(Exception):
    """Base class for errors raised by the metrics pipeline."""


class RuleConfigError(MetricsError, ValueError):
    """A stored rule-set or display configuration does not fit the rule model."""

    def __init__(self, message: str, column: str | None = None):
        super().__init__(message)
        self.column = column


class SourceReadError(MetricsError):
    """Reading rows from a source table failed; the whole run is aborted."""

    def __init__(self, table: str, cause: Exception):
        super().__init__(f"source_read_failed:{table}: {cause}")
        self.table = table
        self.cause = cause
