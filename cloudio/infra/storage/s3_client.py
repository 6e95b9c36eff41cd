"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from cloudio.domain.models import ExplicitCredentials
from cloudio.infra.storage.client import (
    Body,
    CompletedPart,
    ListedObject,
    MultipartUpload,
    ObjectPage,
    StorageError,
)

if TYPE_CHECKING:
    from cloudio.domain.models import TransferTarget

_STORAGE_CLASSES = {
    "standard": "STANDARD",
    "standard_ia": "STANDARD_IA",
    "reduced_redundancy": "REDUCED_REDUNDANCY",
}
_ENCRYPTIONS = {"aes256": "AES256"}


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations.
    """

    def __init__(self, *, target: "TransferTarget") -> None:
        """Initialize the S3 client for a transfer target.

        Args:
            target: Bucket, region, endpoint and credentials to connect with.

        Raises:
            StorageError: If boto3 is not installed.
        """
        self._target = target
        self._client = self._build_client(target)

    @staticmethod
    def _build_client(target: "TransferTarget") -> Any:
        """Create a boto3 S3 client from the target."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for S3 storage backend. "
                "Install with: pip install boto3"
            ) from exc

        addressing_style = (target.addressing_style or "path").strip().lower()
        config = Config(s3={"addressing_style": addressing_style})

        params: dict[str, Any] = {
            "region_name": target.region,
            "endpoint_url": target.custom_endpoint,
            "config": config,
        }
        # AmbientProfileCredentials: leave keys unset so boto3 walks its provider chain
        if isinstance(target.credentials, ExplicitCredentials):
            params["aws_access_key_id"] = target.credentials.access_key_id
            params["aws_secret_access_key"] = target.credentials.secret_access_key

        return boto3.client("s3", **params)

    @staticmethod
    def _storage_params(
        storage_class: str | None, encryption: str | None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if storage_class:
            params["StorageClass"] = _STORAGE_CLASSES.get(
                storage_class, storage_class.upper()
            )
        if encryption:
            params["ServerSideEncryption"] = _ENCRYPTIONS.get(
                encryption, encryption.upper()
            )
        return params

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        storage_class: str | None = None,
        encryption: str | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        params.update(self._storage_params(storage_class, encryption))

        try:
            response = self._client.create_multipart_upload(**params)
        except Exception as exc:
            raise StorageError(f"Failed to create multipart upload: {exc}") from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=bucket,
            object_key=object_key,
        )

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
        """Upload one part, sending its MD5 as Content-MD5."""
        try:
            response = self._client.upload_part(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=int(part_number),
                Body=body,
                ContentMD5=checksum,
            )
        except Exception as exc:
            raise StorageError(
                f"Failed to upload part {part_number}: {exc}"
            ) from exc

        etag = response.get("ETag")
        if not etag:
            raise StorageError(f"S3 response missing ETag for part {part_number}")

        return CompletedPart(part_number=int(part_number), etag=str(etag))

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }

        try:
            self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            raise StorageError(f"Failed to complete multipart upload: {exc}") from exc

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
        """Store an object with a single PUT request."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": object_key,
            "Body": body,
            "ContentMD5": checksum,
        }
        params.update(self._storage_params(storage_class, encryption))

        try:
            self._client.put_object(**params)
        except Exception as exc:
            raise StorageError(f"Failed to put object: {exc}") from exc

    def list_objects(
        self,
        *,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ObjectPage:
        """Return one page of a ListObjectsV2 listing."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Prefix": prefix,
            "MaxKeys": int(max_keys),
        }
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            response = self._client.list_objects_v2(**params)
        except Exception as exc:
            raise StorageError(f"Failed to list objects: {exc}") from exc

        objects = tuple(
            ListedObject(
                key=str(item["Key"]),
                etag=str(item.get("ETag", "")),
                storage_class=str(item.get("StorageClass", "STANDARD")),
            )
            for item in response.get("Contents", [])
        )
        next_token = None
        if response.get("IsTruncated"):
            next_token = response.get("NextContinuationToken")
            if not next_token:
                raise StorageError("S3 response truncated without NextContinuationToken")

        return ObjectPage(objects=objects, next_token=next_token)

    def delete_objects(self, *, bucket: str, object_keys: Sequence[str]) -> None:
        """Delete a batch of objects in quiet mode."""
        payload = {
            "Objects": [{"Key": key} for key in object_keys],
            "Quiet": True,
        }

        try:
            response = self._client.delete_objects(Bucket=bucket, Delete=payload)
        except Exception as exc:
            raise StorageError(f"Failed to delete objects: {exc}") from exc

        errors = response.get("Errors") or []
        if errors:
            details = ", ".join(
                f"{err.get('Key')}: {err.get('Code')} {err.get('Message')}"
                for err in errors
            )
            raise StorageError(f"Failed to delete objects: {details}")

    def head_object(self, *, bucket: str, object_key: str) -> dict[str, str]:
        """Get the object's response headers without downloading the content."""
        try:
            response = self._client.head_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise StorageError(f"Failed to get object metadata: {exc}") from exc

        headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
        return {str(name): str(value) for name, value in headers.items()}
