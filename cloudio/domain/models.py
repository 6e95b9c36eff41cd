"""Value types shared by the chunk planner, transfer service and storage session."""

from __future__ import annotations

import enum
import threading
import types
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Mapping, Union

if TYPE_CHECKING:
    from cloudio.common.config import Settings

MIB = 1024**2


@dataclass(frozen=True, slots=True)
class ExplicitCredentials:
    """Static access key pair."""

    access_key_id: str
    secret_access_key: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class AmbientProfileCredentials:
    """Credentials resolved by the default provider chain (IAM instance profile)."""


Credentials = Union[ExplicitCredentials, AmbientProfileCredentials]


@dataclass(frozen=True, slots=True)
class TransferTarget:
    """Immutable description of the bucket/prefix a storage session writes to."""

    bucket: str
    region: str | None
    path_prefix: str
    credentials: Credentials
    chunk_size_mib: int
    custom_endpoint: str | None = None
    addressing_style: str = "path"
    storage_class: str = "standard"
    encryption: str | None = None

    @property
    def chunk_size_bytes(self) -> int:
        return self.chunk_size_mib * MIB

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TransferTarget":
        credentials: Credentials
        if settings.S3_USE_IAM_PROFILE:
            credentials = AmbientProfileCredentials()
        else:
            credentials = ExplicitCredentials(
                access_key_id=str(settings.S3_ACCESS_KEY_ID),
                secret_access_key=str(settings.S3_SECRET_ACCESS_KEY),
            )
        return cls(
            bucket=str(settings.S3_BUCKET),
            region=settings.S3_REGION,
            path_prefix=settings.S3_PATH,
            credentials=credentials,
            chunk_size_mib=int(settings.S3_CHUNK_SIZE_MB),
            custom_endpoint=settings.S3_ENDPOINT_URL,
            addressing_style=settings.S3_ADDRESSING_STYLE,
            storage_class=settings.S3_STORAGE_CLASS,
            encryption=settings.S3_ENCRYPTION,
        )


class TransferMode(str, enum.Enum):
    SINGLE_SHOT = "single_shot"
    MULTIPART = "multipart"


@dataclass(frozen=True, slots=True)
class ChunkPlan:
    """How a single file is sent: one request, or parts of effective_chunk_bytes."""

    mode: TransferMode
    effective_chunk_bytes: int
    total_parts: int


@dataclass(frozen=True, slots=True)
class ChunkSizeAdjusted:
    """Warning raised when the requested chunk size would exceed the part limit."""

    original_mib: int
    adjusted_mib: int
    suggested_split_bytes: int
    kind: str = "chunk_size_adjusted"

    def message(self) -> str:
        return (
            f"Chunk size {self.original_mib} MiB would exceed the part limit; "
            f"using {self.adjusted_mib} MiB instead. If an exact chunk size is "
            f"required, split the file into pieces of at most "
            f"{self.suggested_split_bytes} bytes before uploading."
        )


@dataclass(frozen=True, slots=True)
class UploadPart:
    """One uploaded part of a multipart upload."""

    part_number: int
    checksum: str
    etag: str


@dataclass(frozen=True, slots=True)
class BackupPackage:
    """A finished backup set: trigger name, timestamp and the file names it produced."""

    trigger: str
    time: str
    filenames: tuple[str, ...] = ()


class RemoteObject:
    """An object returned by a listing.

    ``metadata`` is fetched on first access through ``fetch_metadata`` and
    cached as a read-only mapping; concurrent first reads share a single
    fetch.
    """

    __slots__ = ("key", "etag", "storage_class", "_fetch_metadata", "_metadata", "_lock")

    def __init__(
        self,
        key: str,
        etag: str,
        storage_class: str,
        *,
        fetch_metadata: Callable[[str], Mapping[str, str]] | None = None,
    ) -> None:
        self.key = key
        self.etag = etag
        self.storage_class = storage_class
        self._fetch_metadata = fetch_metadata
        self._metadata: Mapping[str, str] | None = None
        self._lock = threading.Lock()

    @property
    def metadata(self) -> Mapping[str, str]:
        cached = self._metadata
        if cached is not None:
            return cached
        with self._lock:
            if self._metadata is None:
                if self._fetch_metadata is None:
                    raise RuntimeError(f"No metadata source bound for {self.key!r}")
                self._metadata = types.MappingProxyType(
                    dict(self._fetch_metadata(self.key))
                )
            return self._metadata

    @property
    def metadata_loaded(self) -> bool:
        return self._metadata is not None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RemoteObject):
            return NotImplemented
        return (self.key, self.etag, self.storage_class) == (
            other.key,
            other.etag,
            other.storage_class,
        )

    def __hash__(self) -> int:
        return hash((self.key, self.etag, self.storage_class))

    def __repr__(self) -> str:
        return (
            f"RemoteObject(key={self.key!r}, etag={self.etag!r}, "
            f"storage_class={self.storage_class!r})"
        )

