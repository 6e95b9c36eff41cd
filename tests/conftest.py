from __future__ import annotations

import os

import pytest

from cloudio.common.config import get_settings
from cloudio.domain.models import ExplicitCredentials, TransferTarget
from tests.services.mock_storage import MockStorageClient

# keep a developer's .env or shell settings out of the tests
for _name in list(os.environ):
    if _name.startswith("S3_"):
        os.environ.pop(_name)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def target() -> TransferTarget:
    return TransferTarget(
        bucket="my_bucket",
        region="us-east-1",
        path_prefix="my/path",
        credentials=ExplicitCredentials("my_access_key_id", "my_secret_access_key"),
        chunk_size_mib=5,
    )


@pytest.fixture()
def mock_storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture()
def make_file(tmp_path):
    def _make(name: str, size: int) -> str:
        path = tmp_path / name
        # repeating pattern so every part has a distinct digest
        pattern = bytes(range(251))
        with path.open("wb") as fp:
            remaining = size
            while remaining > 0:
                block = pattern * min(4096, remaining // len(pattern) + 1)
                block = block[:remaining]
                fp.write(block)
                remaining -= len(block)
        return str(path)

    return _make
