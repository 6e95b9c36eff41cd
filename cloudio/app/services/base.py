from __future__ import annotations


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class ObjectTooLargeError(ServiceError):
    """Raised when a file exceeds the provider's absolute object size ceiling.

    Not retriable: the file has to be split or sent elsewhere.
    """

    def __init__(self, message: str, *, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(message)
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class TransferError(ServiceError):
    """Raised when a storage call fails during upload, listing or deletion."""

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        key: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.bucket = bucket
        self.key = key
        self.operation = operation


class NotFoundError(ServiceError):
    """Raised when a remote location expected to hold objects is empty."""
