"""Storage exceptions. None of them escape a store operation."""


class StorageError(Exception):
    """Base class for list storage failures."""

    def __init__(self, message: str, original_exception: Exception = None):
        super().__init__(message)
        self.original_exception = original_exception


class CorruptionError(StorageError):
    """A persisted payload could not be decoded."""


class StorageUnavailableError(StorageError):
    """A storage substrate refused a read or write (quota, permissions, missing)."""
