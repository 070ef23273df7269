"""
Exception types raised by the activity log.

``PersistenceError`` subclasses are treated as non-fatal by the store: they
are logged and collected in ``ActivityLogStore.warnings`` while the
in-memory collection stays authoritative for the session.
"""


class ActivityLogError(Exception):
    """Base exception for the activity log."""
    pass


class PersistenceError(ActivityLogError):
    """Loading or saving the log failed."""
    pass


class PersistenceCorruptError(PersistenceError):
    """Stored data could not be parsed into log entries."""
    pass


class PersistenceIOError(PersistenceError):
    """Reading or writing the backing storage failed."""
    pass


class InvalidRangeError(ActivityLogError, ValueError):
    """An interval ends before it starts."""

    def __init__(self, start_time: int, end_time: int) -> None:
        super().__init__(f"End time ({end_time}) must not be before start time ({start_time}).")
        self.start_time = start_time
        self.end_time = end_time


class NotFoundError(ActivityLogError, KeyError):
    """No entry with the given id exists."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(entry_id)
        self.entry_id = entry_id

    def __str__(self) -> str:
        return f"No activity entry with id '{self.entry_id}'."


class InvariantViolationError(ActivityLogError):
    """More than one entry would be (or is) open at the same time."""
    pass
