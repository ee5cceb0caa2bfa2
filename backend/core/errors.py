"""
StockPulse error taxonomy.

Raised by the alert pipeline, the history store and the notification
channels. Routers and workers translate these into results; they are never
allowed to stop the scheduler loop.
"""


class StockPulseError(Exception):
    """Base class for domain errors."""


class DataUnavailable(StockPulseError):
    """Snapshot provider or history store could not be reached."""


class FilterValidationError(StockPulseError, ValueError):
    """A history filter value could not be parsed."""

    def __init__(self, field: str, value: object, reason: str = "invalid value"):
        self.field = field
        self.value = value
        super().__init__(f"{field}: {reason} ({value!r})")


class PersistenceError(StockPulseError):
    """An inventory log entry could not be written."""


class SchemaNotProvisioned(StockPulseError):
    """The history schema is missing or at an unexpected version."""

    def __init__(self, found: int | None, expected: int):
        self.found = found
        self.expected = expected
        super().__init__(f"schema version {found} found, {expected} expected")


class NotificationError(StockPulseError):
    """A notification channel rejected or failed to deliver a message."""
