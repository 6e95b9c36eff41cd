"""Storage session: stores and removes backup packages under the configured path.

A package lands under ``<path>/<trigger>/<time>/``. The session owns the
retry policy for transfer failures; the transfer service itself never
retries.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

from cloudio.app.services.base import NotFoundError, TransferError
from cloudio.app.services.transfer_service import TransferService
from cloudio.common.config import Settings, get_settings
from cloudio.domain.models import BackupPackage, RemoteObject, TransferTarget

logger = logging.getLogger("cloudio.session")

T = TypeVar("T")


class StorageSession:
    """Stores backup packages in one bucket and removes them again."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transfer_service: TransferService | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._target = TransferTarget.from_settings(self._settings)
        self._transfer = transfer_service or TransferService(self._target)
        self._sleep = sleep

    @property
    def target(self) -> TransferTarget:
        return self._target

    def remote_path(self, package: BackupPackage) -> str:
        parts = [self._target.path_prefix, package.trigger, package.time]
        return "/".join(part.strip("/") for part in parts if part)

    def transfer(self, package: BackupPackage, *, source_dir: str | None = None) -> None:
        """Upload every file of ``package`` from ``source_dir`` (default TMP_PATH)."""
        source_dir = source_dir or self._settings.TMP_PATH
        remote_path = self.remote_path(package)
        jobs = [
            (os.path.join(source_dir, filename), f"{remote_path}/{filename}")
            for filename in package.filenames
        ]

        workers = min(self._settings.S3_MAX_WORKERS, len(jobs))
        if workers <= 1:
            for src, dest in jobs:
                self._store(src, dest)
            return

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._store, src, dest) for src, dest in jobs]
            for future in futures:
                future.result()

    def _store(self, src: str, dest: str) -> None:
        logger.info(
            "Storing '%s/%s'... [event=store_file]",
            self._target.bucket,
            dest,
            extra={"extra": {"bucket": self._target.bucket, "key": dest, "src": src}},
        )
        self._with_retries(f"upload of '{dest}'", self._transfer.upload, src, dest)

    def remove(self, package: BackupPackage) -> list[RemoteObject]:
        """Delete every object stored for ``package``.

        Raises:
            NotFoundError: If nothing is stored under the package's remote path.
            TransferError: If listing or deletion keeps failing.
        """
        logger.info(
            "Removing backup package dated %s... [event=remove_package]",
            package.time,
            extra={"extra": {"trigger": package.trigger, "time": package.time}},
        )
        remote_path = self.remote_path(package)
        objects = self._with_retries(
            f"listing of '{remote_path}'", self._transfer.list_objects, remote_path
        )
        if not objects:
            raise NotFoundError(f"Package at '{remote_path}' not found")

        self._with_retries(
            f"removal of '{remote_path}'", self._transfer.delete, objects
        )
        return objects

    def _with_retries(self, description: str, func: Callable[..., T], *args: object) -> T:
        retries = 0
        while True:
            try:
                return func(*args)
            except TransferError as exc:
                retries += 1
                if retries > self._settings.S3_MAX_RETRIES:
                    logger.error(
                        "Giving up on %s after %d retries. [event=retries_exhausted]",
                        description,
                        self._settings.S3_MAX_RETRIES,
                        extra={"extra": {"operation": exc.operation, "key": exc.key}},
                    )
                    raise
                logger.warning(
                    "Retry #%d of %d for %s in %ds: %s [event=transfer_retry]",
                    retries,
                    self._settings.S3_MAX_RETRIES,
                    description,
                    self._settings.S3_RETRY_WAITSEC,
                    exc,
                    extra={
                        "extra": {
                            "retry": retries,
                            "operation": exc.operation,
                            "key": exc.key,
                        }
                    },
                )
                self._sleep(self._settings.S3_RETRY_WAITSEC)
