from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

STORAGE_CLASSES: tuple[str, ...] = ("standard", "standard_ia", "reduced_redundancy")
ENCRYPTIONS: tuple[str, ...] = ("aes256",)
MIN_CHUNK_SIZE_MB = 5
MAX_CHUNK_SIZE_MB = 5120


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    S3_BUCKET: str | None = None
    S3_REGION: str | None = None
    S3_PATH: str = "backups"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_USE_IAM_PROFILE: bool = False
    S3_CHUNK_SIZE_MB: int = 5
    S3_ENDPOINT_URL: str | None = None
    S3_ADDRESSING_STYLE: str = "path"
    S3_STORAGE_CLASS: str = "standard"
    S3_ENCRYPTION: str | None = None
    S3_MAX_RETRIES: int = 10
    S3_RETRY_WAITSEC: int = 30
    S3_MAX_WORKERS: int = 1
    TMP_PATH: str = "tmp"
    METRICS_PORT: int | None = None
    LOG_FORMAT: str = "json"

    def __post_init__(self) -> None:
        self.S3_PATH = self.S3_PATH.lstrip("/")
        self.S3_STORAGE_CLASS = self.S3_STORAGE_CLASS.strip().lower()
        if self.S3_ENCRYPTION is not None:
            self.S3_ENCRYPTION = self.S3_ENCRYPTION.strip().lower() or None

        required = [self.S3_BUCKET]
        if not self.S3_USE_IAM_PROFILE:
            required += [self.S3_ACCESS_KEY_ID, self.S3_SECRET_ACCESS_KEY]
        if not all(required):
            raise ValueError(
                "S3_BUCKET, S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY are all required "
                "(access keys may be omitted when S3_USE_IAM_PROFILE is enabled)."
            )
        if self.S3_CHUNK_SIZE_MB != 0 and not (
            MIN_CHUNK_SIZE_MB <= self.S3_CHUNK_SIZE_MB <= MAX_CHUNK_SIZE_MB
        ):
            raise ValueError(
                f"S3_CHUNK_SIZE_MB must be between {MIN_CHUNK_SIZE_MB} and "
                f"{MAX_CHUNK_SIZE_MB} (or 0 to disable multipart uploads)."
            )
        if self.S3_STORAGE_CLASS not in STORAGE_CLASSES:
            raise ValueError(
                "S3_STORAGE_CLASS must be one of: " + ", ".join(STORAGE_CLASSES)
            )
        if self.S3_ENCRYPTION is not None and self.S3_ENCRYPTION not in ENCRYPTIONS:
            raise ValueError("S3_ENCRYPTION must be 'aes256' or empty.")
        if self.S3_MAX_RETRIES < 0 or self.S3_RETRY_WAITSEC < 0:
            raise ValueError("S3_MAX_RETRIES and S3_RETRY_WAITSEC must not be negative.")
        if self.S3_MAX_WORKERS < 1:
            raise ValueError("S3_MAX_WORKERS must be at least 1.")
        if self.LOG_FORMAT not in {"json", "plain"}:
            raise ValueError("LOG_FORMAT must be 'json' or 'plain'.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        metrics_port = _as_optional(os.environ.get("METRICS_PORT"))
        return cls(
            S3_BUCKET=_as_optional(os.environ.get("S3_BUCKET")),
            S3_REGION=_as_optional(os.environ.get("S3_REGION")),
            S3_PATH=os.environ.get("S3_PATH", cls.S3_PATH),
            S3_ACCESS_KEY_ID=_as_optional(os.environ.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(os.environ.get("S3_SECRET_ACCESS_KEY")),
            S3_USE_IAM_PROFILE=_as_bool(
                os.environ.get("S3_USE_IAM_PROFILE"), cls.S3_USE_IAM_PROFILE
            ),
            S3_CHUNK_SIZE_MB=int(
                os.environ.get("S3_CHUNK_SIZE_MB", cls.S3_CHUNK_SIZE_MB)
            ),
            S3_ENDPOINT_URL=_as_optional(os.environ.get("S3_ENDPOINT_URL")),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            S3_STORAGE_CLASS=os.environ.get("S3_STORAGE_CLASS", cls.S3_STORAGE_CLASS),
            S3_ENCRYPTION=_as_optional(os.environ.get("S3_ENCRYPTION")),
            S3_MAX_RETRIES=int(os.environ.get("S3_MAX_RETRIES", cls.S3_MAX_RETRIES)),
            S3_RETRY_WAITSEC=int(
                os.environ.get("S3_RETRY_WAITSEC", cls.S3_RETRY_WAITSEC)
            ),
            S3_MAX_WORKERS=int(os.environ.get("S3_MAX_WORKERS", cls.S3_MAX_WORKERS)),
            TMP_PATH=os.environ.get("TMP_PATH", cls.TMP_PATH),
            METRICS_PORT=int(metrics_port) if metrics_port else None,
            LOG_FORMAT=os.environ.get("LOG_FORMAT", cls.LOG_FORMAT).strip().lower(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
