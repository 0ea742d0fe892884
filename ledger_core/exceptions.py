"""Domain-specific exceptions for the ledger core services."""

from typing import Any, Optional


class ValidationError(ValueError):
    """Raised when provided data does not meet validation requirements."""


class RecordNotFoundError(LookupError):
    """Raised when an expense, order or distribution record cannot be located."""


class ConflictError(RuntimeError):
    """Raised when a write collides with an existing record's natural key."""


class StoreUnavailable(IOError):
    """Raised when the persistence layer cannot be read from or written to."""


class PartialApplicationWarning(UserWarning):
    """Raised when one step of a two-step mutation landed and the other did not.

    ``record`` is whatever was persisted by the step that succeeded and
    ``cause`` is the error raised by the step that failed. Operators are
    expected to reconcile these by hand.
    """

    def __init__(self, message: str, *, record: Any = None, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.record = record
        self.cause = cause
