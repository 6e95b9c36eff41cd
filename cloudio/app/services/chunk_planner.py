"""Decide between a single PUT and a multipart upload for one file.

The provider imposes three independent ceilings: one request may carry at
most 5 GiB, an object may be at most 5 TiB, and a multipart upload may have
at most 10,000 parts. ``plan`` reconciles them with the configured chunk
size, enlarging the chunk (never shrinking it) when the part count would
overflow.
"""

from __future__ import annotations

import logging
from typing import Callable

from cloudio.app.services.base import ObjectTooLargeError
from cloudio.domain.models import MIB, ChunkPlan, ChunkSizeAdjusted, TransferMode

MAX_SINGLE_OBJECT_BYTES = 5 * 1024**3
MAX_MULTIPART_OBJECT_BYTES = 5 * 1024**4
MAX_PARTS = 10_000

logger = logging.getLogger("cloudio.transfer")

WarningHandler = Callable[[ChunkSizeAdjusted], None]


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def _log_warning(event: ChunkSizeAdjusted) -> None:
    logger.warning(
        "%s [event=%s]",
        event.message(),
        event.kind,
        extra={
            "extra": {
                "event": event.kind,
                "original_mib": event.original_mib,
                "adjusted_mib": event.adjusted_mib,
                "suggested_split_bytes": event.suggested_split_bytes,
            }
        },
    )


def plan(
    file_size: int,
    requested_chunk_bytes: int,
    *,
    file_label: str | None = None,
    on_warning: WarningHandler | None = None,
) -> ChunkPlan:
    """Return the transfer plan for a file of ``file_size`` bytes.

    Args:
        file_size: Size of the local file in bytes.
        requested_chunk_bytes: Configured part size; 0 disables multipart.
        file_label: Name used in error messages.
        on_warning: Receives a ChunkSizeAdjusted event when the chunk is
            enlarged. Defaults to logging the event.

    Raises:
        ObjectTooLargeError: If the file exceeds the ceiling for its mode.
        ValueError: If either size is negative.
    """
    if file_size < 0 or requested_chunk_bytes < 0:
        raise ValueError("file_size and requested_chunk_bytes must not be negative")

    label = f"File: {file_label}\n" if file_label else ""

    if requested_chunk_bytes == 0 or file_size <= requested_chunk_bytes:
        if file_size > MAX_SINGLE_OBJECT_BYTES:
            raise ObjectTooLargeError(
                f"File Too Large\n{label}Size: {file_size}\n"
                f"Max File Size is {MAX_SINGLE_OBJECT_BYTES} (5 GiB)",
                size_bytes=file_size,
                limit_bytes=MAX_SINGLE_OBJECT_BYTES,
            )
        return ChunkPlan(
            mode=TransferMode.SINGLE_SHOT,
            effective_chunk_bytes=requested_chunk_bytes,
            total_parts=1,
        )

    if file_size > MAX_MULTIPART_OBJECT_BYTES:
        raise ObjectTooLargeError(
            f"File Too Large\n{label}Size: {file_size}\n"
            f"Max Multipart Upload Size is {MAX_MULTIPART_OBJECT_BYTES} (5 TiB)",
            size_bytes=file_size,
            limit_bytes=MAX_MULTIPART_OBJECT_BYTES,
        )

    chunk_bytes = requested_chunk_bytes
    if _ceil_div(file_size, chunk_bytes) > MAX_PARTS:
        # smallest whole-MiB step above the request that fits in MAX_PARTS
        minimum = _ceil_div(file_size, MAX_PARTS)
        steps = _ceil_div(minimum - requested_chunk_bytes, MIB)
        chunk_bytes = requested_chunk_bytes + steps * MIB

        event = ChunkSizeAdjusted(
            original_mib=requested_chunk_bytes // MIB,
            adjusted_mib=chunk_bytes // MIB,
            suggested_split_bytes=chunk_bytes * MAX_PARTS,
        )
        (on_warning or _log_warning)(event)

    return ChunkPlan(
        mode=TransferMode.MULTIPART,
        effective_chunk_bytes=chunk_bytes,
        total_parts=_ceil_div(file_size, chunk_bytes),
    )
