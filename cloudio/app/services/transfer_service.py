"""Transfer service: uploads local files and manages objects under a prefix.

This module is the engine behind a storage session. It asks the chunk
planner how to send each file, computes the Content-MD5 of every unit it
transfers, and maps storage client failures onto ``TransferError``.
Retrying is left to the caller.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
from typing import BinaryIO, Iterable, Union

from cloudio.app.services import chunk_planner
from cloudio.app.services.base import TransferError
from cloudio.domain.models import (
    ChunkPlan,
    RemoteObject,
    TransferMode,
    TransferTarget,
    UploadPart,
)
from cloudio.infra.observability.metrics import (
    DELETED_OBJECTS,
    TRANSFER_BYTES,
    TRANSFER_FAILURES,
    TRANSFER_PARTS,
)
from cloudio.infra.storage.client import CompletedPart, StorageClient, StorageError

# S3 DeleteObjects accepts at most 1000 keys per request
MAX_DELETE_BATCH = 1000
LIST_PAGE_SIZE = 1000
_HASH_BLOCK_BYTES = 1024**2

logger = logging.getLogger("cloudio.transfer")

ObjectRef = Union[RemoteObject, str]


def content_md5(data: bytes) -> str:
    """Base64 MD5 digest, as expected by the Content-MD5 header."""
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


def file_content_md5(fileobj: BinaryIO) -> str:
    digest = hashlib.md5()
    for block in iter(lambda: fileobj.read(_HASH_BLOCK_BYTES), b""):
        digest.update(block)
    return base64.b64encode(digest.digest()).decode("ascii")


def progress_milestones(total_parts: int) -> list[int]:
    """Part numbers at which 10%..90% of the upload is done.

    Small uploads may map several percentages to the same part, or to part 0
    which is never reached.
    """
    return [total_parts * tenth // 10 for tenth in range(1, 10)]


def _percent_complete(milestones: list[int], part_number: int) -> int | None:
    for index in range(len(milestones) - 1, -1, -1):
        if milestones[index] == part_number:
            return (index + 1) * 10
    return None


class TransferService:
    """Uploads files to, lists and deletes objects in one bucket.

    A single instance may run ``upload`` from several threads at once for
    different files; everything specific to one upload lives on the stack.
    """

    def __init__(
        self,
        target: TransferTarget,
        *,
        storage_client: StorageClient | None = None,
        on_warning: chunk_planner.WarningHandler | None = None,
    ) -> None:
        self._target = target
        self._storage = storage_client or self._build_storage_client(target)
        self._on_warning = on_warning

    @staticmethod
    def _build_storage_client(target: TransferTarget) -> StorageClient:
        from cloudio.infra.storage.s3_client import S3StorageClient

        return S3StorageClient(target=target)

    @property
    def target(self) -> TransferTarget:
        return self._target

    def upload(self, local_path: str | os.PathLike[str], remote_key: str) -> None:
        """Upload ``local_path`` to ``remote_key`` in the target bucket.

        Raises:
            ObjectTooLargeError: If the file exceeds the provider ceiling.
            TransferError: If any storage call fails.
        """
        file_size = os.path.getsize(local_path)
        plan = chunk_planner.plan(
            file_size,
            self._target.chunk_size_bytes,
            file_label=os.fspath(local_path),
            on_warning=self._on_warning,
        )
        if plan.mode is TransferMode.SINGLE_SHOT:
            self._put_file(local_path, remote_key, file_size)
        else:
            self._upload_multipart(local_path, remote_key, plan)

    def _put_file(
        self, local_path: str | os.PathLike[str], remote_key: str, file_size: int
    ) -> None:
        bucket = self._target.bucket
        with open(local_path, "rb") as fileobj:
            checksum = file_content_md5(fileobj)
            fileobj.seek(0)
            try:
                self._storage.put_object(
                    bucket=bucket,
                    object_key=remote_key,
                    body=fileobj,
                    checksum=checksum,
                    storage_class=self._target.storage_class,
                    encryption=self._target.encryption,
                )
            except StorageError as exc:
                raise self._failure("put_object", remote_key, exc) from exc
        TRANSFER_BYTES.labels(mode=TransferMode.SINGLE_SHOT.value).inc(file_size)

    def _upload_multipart(
        self, local_path: str | os.PathLike[str], remote_key: str, plan: ChunkPlan
    ) -> None:
        bucket = self._target.bucket
        try:
            upload = self._storage.init_multipart_upload(
                bucket=bucket,
                object_key=remote_key,
                storage_class=self._target.storage_class,
                encryption=self._target.encryption,
            )
        except StorageError as exc:
            raise self._failure("init_multipart_upload", remote_key, exc) from exc

        milestones = progress_milestones(plan.total_parts)
        parts: list[UploadPart] = []
        with open(local_path, "rb") as fileobj:
            for chunk in iter(lambda: fileobj.read(plan.effective_chunk_bytes), b""):
                part_number = len(parts) + 1
                checksum = content_md5(chunk)
                try:
                    completed = self._storage.upload_part(
                        bucket=bucket,
                        object_key=remote_key,
                        upload_id=upload.upload_id,
                        part_number=part_number,
                        body=chunk,
                        checksum=checksum,
                    )
                except StorageError as exc:
                    raise self._failure(
                        "upload_part", remote_key, exc, part_number=part_number
                    ) from exc
                parts.append(
                    UploadPart(
                        part_number=part_number, checksum=checksum, etag=completed.etag
                    )
                )
                TRANSFER_PARTS.inc()
                TRANSFER_BYTES.labels(mode=TransferMode.MULTIPART.value).inc(len(chunk))

                percent = _percent_complete(milestones, part_number)
                if percent is not None:
                    logger.info(
                        "  ...%d%% Complete... [event=upload_progress]",
                        percent,
                        extra={
                            "extra": {
                                "bucket": bucket,
                                "key": remote_key,
                                "percent": percent,
                                "part_number": part_number,
                                "total_parts": plan.total_parts,
                            }
                        },
                    )

        expected = list(range(1, plan.total_parts + 1))
        if [part.part_number for part in parts] != expected:
            TRANSFER_FAILURES.labels(operation="complete_multipart_upload").inc()
            raise TransferError(
                f"Multipart upload of '{bucket}/{remote_key}' is incomplete: "
                f"sent {len(parts)} of {plan.total_parts} parts "
                f"(upload_id={upload.upload_id})",
                bucket=bucket,
                key=remote_key,
                operation="complete_multipart_upload",
            )

        try:
            self._storage.complete_multipart_upload(
                bucket=bucket,
                object_key=remote_key,
                upload_id=upload.upload_id,
                parts=[
                    CompletedPart(part_number=part.part_number, etag=part.etag)
                    for part in parts
                ],
            )
        except StorageError as exc:
            raise self._failure("complete_multipart_upload", remote_key, exc) from exc

    def list_objects(self, prefix: str) -> list[RemoteObject]:
        """Return every object under ``prefix/``, in key order."""
        if prefix.endswith("/"):
            prefix = prefix[:-1]
        key_prefix = prefix + "/"

        objects: list[RemoteObject] = []
        token: str | None = None
        while True:
            try:
                page = self._storage.list_objects(
                    bucket=self._target.bucket,
                    prefix=key_prefix,
                    continuation_token=token,
                    max_keys=LIST_PAGE_SIZE,
                )
            except StorageError as exc:
                raise self._failure("list_objects", key_prefix, exc) from exc
            objects.extend(
                RemoteObject(
                    item.key,
                    item.etag,
                    item.storage_class,
                    fetch_metadata=self._fetch_metadata,
                )
                for item in page.objects
            )
            token = page.next_token
            if not token:
                return objects

    def _fetch_metadata(self, key: str) -> dict[str, str]:
        try:
            return self._storage.head_object(bucket=self._target.bucket, object_key=key)
        except StorageError as exc:
            raise self._failure("head_object", key, exc) from exc

    def delete(self, objects: ObjectRef | Iterable[ObjectRef]) -> None:
        """Delete the given objects or keys in batches of MAX_DELETE_BATCH.

        Keys that no longer exist are not an error.
        """
        if isinstance(objects, (str, RemoteObject)):
            objects = [objects]
        keys = [obj.key if isinstance(obj, RemoteObject) else obj for obj in objects]

        for start in range(0, len(keys), MAX_DELETE_BATCH):
            batch = keys[start : start + MAX_DELETE_BATCH]
            try:
                self._storage.delete_objects(
                    bucket=self._target.bucket, object_keys=batch
                )
            except StorageError as exc:
                raise self._failure("delete_objects", batch[0], exc) from exc
            DELETED_OBJECTS.inc(len(batch))

    def _failure(
        self,
        operation: str,
        key: str,
        exc: Exception,
        *,
        part_number: int | None = None,
    ) -> TransferError:
        TRANSFER_FAILURES.labels(operation=operation).inc()
        location = f"{self._target.bucket}/{key}"
        if part_number is not None:
            location += f" (part {part_number})"
        return TransferError(
            f"{operation} failed for '{location}': {exc}",
            bucket=self._target.bucket,
            key=key,
            operation=operation,
        )
