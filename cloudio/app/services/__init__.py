from .base import NotFoundError, ObjectTooLargeError, ServiceError, TransferError
from .chunk_planner import (
    MAX_MULTIPART_OBJECT_BYTES,
    MAX_PARTS,
    MAX_SINGLE_OBJECT_BYTES,
    plan,
)
from .transfer_service import MAX_DELETE_BATCH, TransferService
from .storage_session import StorageSession

__all__ = [
    "ServiceError",
    "ObjectTooLargeError",
    "TransferError",
    "NotFoundError",
    "plan",
    "MAX_SINGLE_OBJECT_BYTES",
    "MAX_MULTIPART_OBJECT_BYTES",
    "MAX_PARTS",
    "MAX_DELETE_BATCH",
    "TransferService",
    "StorageSession",
]
