"""Storage client protocol and data types.

This module defines the abstract interface for the object storage operations
the transfer service relies on: multipart and single-request uploads,
paginated prefix listings, batch deletes and metadata lookups.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Protocol, Sequence, Union

Body = Union[bytes, BinaryIO]


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    bucket: str
    object_key: str


@dataclass(frozen=True, slots=True)
class ListedObject:
    """A single entry of a listing page."""

    key: str
    etag: str
    storage_class: str


@dataclass(frozen=True, slots=True)
class ObjectPage:
    """One bounded page of a prefix listing.

    ``next_token`` is None on the last page.
    """

    objects: tuple[ListedObject, ...]
    next_token: str | None = None


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations must provide all methods defined here and must not keep
    per-upload state between calls; one client may serve several threads.
    """

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        storage_class: str | None = None,
        encryption: str | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            storage_class: Storage class for the finished object.
            encryption: Server-side encryption algorithm, if any.

        Returns:
            MultipartUpload containing the upload_id for subsequent operations.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
        checksum: str,
    ) -> CompletedPart:
        """Upload one part of a multipart upload.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            upload_id: Multipart upload ID from init_multipart_upload.
            part_number: Part number (1-based, max 10000).
            body: Part payload.
            checksum: Base64 MD5 digest of ``body`` for server-side verification.

        Returns:
            CompletedPart carrying the ETag the server assigned to the part.

        Raises:
            StorageError: If the upload fails.
        """
        ...

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            upload_id: Multipart upload ID.
            parts: Completed parts with their ETags.

        Raises:
            StorageError: If completion fails.
        """
        ...

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: Body,
        checksum: str,
        storage_class: str | None = None,
        encryption: str | None = None,
    ) -> None:
        """Store an object with a single request.

        Raises:
            StorageError: If the request fails.
        """
        ...

    def list_objects(
        self,
        *,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ObjectPage:
        """Return one page of the objects whose key starts with ``prefix``.

        Pages come back in lexicographic key order.

        Raises:
            StorageError: If the listing fails.
        """
        ...

    def delete_objects(self, *, bucket: str, object_keys: Sequence[str]) -> None:
        """Delete up to 1000 objects in one request.

        Keys that do not exist are ignored.

        Raises:
            StorageError: If the request fails or the server reports per-key errors.
        """
        ...

    def head_object(self, *, bucket: str, object_key: str) -> dict[str, str]:
        """Return the object's response headers without downloading it.

        Raises:
            StorageError: If the operation fails.
        """
        ...
