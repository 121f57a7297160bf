"""Custom exceptions for the sensor sample store."""


class SampleStoreError(Exception):
    """Base exception for all sample store errors."""

    pass


class NotFoundError(SampleStoreError):
    """Raised when the store file is missing (consumer open) or the table is empty."""

    pass


class OpenError(SampleStoreError):
    """Raised when the database connection or schema setup fails."""

    pass


class StorePermissionError(SampleStoreError, PermissionError):
    """Raised when a write is attempted on a read-only (consumer) store."""

    pass


class PrepareError(SampleStoreError):
    """Raised when SQLite cannot compile a statement."""

    pass


class WriteError(SampleStoreError):
    """Raised when an insert cannot be executed or committed."""

    pass


class QueryError(SampleStoreError):
    """Raised when a read statement fails while fetching rows."""

    pass


class StoreClosedError(SampleStoreError):
    """Raised when an operation is attempted on a closed store."""

    pass
