"""Tests for TransferService."""

from __future__ import annotations

import base64
import hashlib
import logging
import threading
from dataclasses import replace

import pytest
from prometheus_client import REGISTRY

from cloudio.app.services.base import ObjectTooLargeError, TransferError
from cloudio.app.services.transfer_service import (
    TransferService,
    content_md5,
    progress_milestones,
)
from cloudio.domain.models import MIB, RemoteObject
from cloudio.infra.storage.client import StorageError


@pytest.fixture()
def service(target, mock_storage):
    return TransferService(target, storage_client=mock_storage)


def _md5_b64(data: bytes) -> str:
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


class TestSingleShotUpload:
    def test_puts_small_file_with_checksum(self, service, mock_storage, make_file):
        path = make_file("small.tar", 1024)

        service.upload(path, "my/path/small.tar")

        puts = mock_storage.calls_to("put_object")
        assert len(puts) == 1
        assert puts[0]["bucket"] == "my_bucket"
        assert puts[0]["object_key"] == "my/path/small.tar"
        assert puts[0]["storage_class"] == "standard"
        assert mock_storage.calls_to("init_multipart_upload") == []

    def test_round_trip_checksum_matches(self, service, mock_storage, make_file):
        path = make_file("data.bin", 3 * MIB)
        with open(path, "rb") as fp:
            original = fp.read()

        service.upload(path, "my/path/data.bin")

        sent = mock_storage.calls_to("put_object")[0]["checksum"]
        fetched = mock_storage.get_object("my/path/data.bin")
        assert fetched == original
        assert _md5_b64(fetched) == sent

    def test_empty_file_skips_part_machinery(self, service, mock_storage, make_file):
        path = make_file("empty", 0)

        service.upload(path, "my/path/empty")

        assert [name for name, _ in mock_storage.calls] == ["put_object"]
        assert mock_storage.calls_to("put_object")[0]["checksum"] == content_md5(b"")

    def test_chunk_size_zero_never_splits(self, target, mock_storage, make_file):
        service = TransferService(
            replace(target, chunk_size_mib=0), storage_client=mock_storage
        )
        path = make_file("big.tar", 12 * MIB)

        service.upload(path, "my/path/big.tar")

        assert len(mock_storage.calls_to("put_object")) == 1
        assert mock_storage.calls_to("upload_part") == []

    def test_put_failure_raises_transfer_error(self, service, mock_storage, make_file):
        mock_storage.failures["put_object"] = StorageError("connection reset")
        path = make_file("small.tar", 10)

        with pytest.raises(TransferError, match="my_bucket/my/path/small.tar") as excinfo:
            service.upload(path, "my/path/small.tar")

        assert excinfo.value.operation == "put_object"
        assert isinstance(excinfo.value.__cause__, StorageError)

    def test_too_large_file_is_rejected_before_any_call(
        self, target, mock_storage, tmp_path
    ):
        service = TransferService(
            replace(target, chunk_size_mib=0), storage_client=mock_storage
        )
        path = tmp_path / "sparse.img"
        with path.open("wb") as fp:
            fp.truncate(5 * 1024**3 + 1)

        with pytest.raises(ObjectTooLargeError):
            service.upload(str(path), "my/path/sparse.img")

        assert mock_storage.calls == []


class TestMultipartUpload:
    def test_six_mib_file_uses_two_parts(self, service, mock_storage, make_file):
        path = make_file("db.tar", 6 * MIB)
        with open(path, "rb") as fp:
            original = fp.read()

        service.upload(path, "my/path/db.tar")

        parts = mock_storage.calls_to("upload_part")
        assert [p["part_number"] for p in parts] == [1, 2]
        assert [p["size"] for p in parts] == [5 * MIB, 1 * MIB]
        assert parts[0]["checksum"] == _md5_b64(original[: 5 * MIB])
        assert parts[1]["checksum"] == _md5_b64(original[5 * MIB :])
        assert {p["upload_id"] for p in parts} == {"mock-upload-1"}

        completes = mock_storage.calls_to("complete_multipart_upload")
        assert len(completes) == 1
        assert completes[0]["part_numbers"] == [1, 2]
        assert mock_storage.get_object("my/path/db.tar") == original

    def test_passes_storage_options_to_init(self, target, mock_storage, make_file):
        service = TransferService(
            replace(target, storage_class="standard_ia", encryption="aes256"),
            storage_client=mock_storage,
        )
        path = make_file("db.tar", 6 * MIB)

        service.upload(path, "my/path/db.tar")

        init = mock_storage.calls_to("init_multipart_upload")[0]
        assert init["bucket"] == "my_bucket"
        assert init["object_key"] == "my/path/db.tar"
        assert init["storage_class"] == "standard_ia"
        assert init["encryption"] == "aes256"

    def test_init_failure_raises_transfer_error(self, service, mock_storage, make_file):
        mock_storage.failures["init_multipart_upload"] = StorageError("denied")
        path = make_file("db.tar", 6 * MIB)

        with pytest.raises(TransferError, match="init_multipart_upload"):
            service.upload(path, "my/path/db.tar")

        assert mock_storage.calls_to("upload_part") == []

    def test_part_failure_stops_without_completing(
        self, service, mock_storage, make_file
    ):
        mock_storage.failures["upload_part"] = StorageError("timeout")
        mock_storage.fail_part = 2
        path = make_file("db.tar", 11 * MIB)

        with pytest.raises(TransferError, match=r"\(part 2\)") as excinfo:
            service.upload(path, "my/path/db.tar")

        assert excinfo.value.operation == "upload_part"
        assert [p["part_number"] for p in mock_storage.calls_to("upload_part")] == [1, 2]
        assert mock_storage.calls_to("complete_multipart_upload") == []
        assert "my/path/db.tar" not in mock_storage.objects

    def test_complete_failure_raises_transfer_error(
        self, service, mock_storage, make_file
    ):
        mock_storage.failures["complete_multipart_upload"] = StorageError("500")
        path = make_file("db.tar", 6 * MIB)

        with pytest.raises(TransferError, match="complete_multipart_upload"):
            service.upload(path, "my/path/db.tar")

    def test_file_growing_during_upload_is_not_completed(
        self, service, mock_storage, make_file
    ):
        path = make_file("growing.log", 6 * MIB)
        original_upload_part = mock_storage.upload_part

        def upload_part_and_grow(**kwargs):
            if kwargs["part_number"] == 1:
                with open(path, "ab") as fp:
                    fp.write(b"x" * (5 * MIB))
            return original_upload_part(**kwargs)

        mock_storage.upload_part = upload_part_and_grow

        with pytest.raises(TransferError, match="incomplete"):
            service.upload(path, "my/path/growing.log")

        assert mock_storage.calls_to("complete_multipart_upload") == []

    def test_reports_each_ten_percent_once(
        self, target, mock_storage, make_file, caplog
    ):
        service = TransferService(
            replace(target, chunk_size_mib=1), storage_client=mock_storage
        )
        path = make_file("twenty.bin", 20 * MIB)

        with caplog.at_level(logging.INFO, logger="cloudio.transfer"):
            service.upload(path, "my/path/twenty.bin")

        progress = [
            r.extra["percent"]
            for r in caplog.records
            if "[event=upload_progress]" in r.getMessage()
        ]
        assert progress == [10, 20, 30, 40, 50, 60, 70, 80, 90]
        assert "...10% Complete..." in caplog.text

    def test_concurrent_uploads_keep_parts_separate(
        self, target, mock_storage, make_file
    ):
        service = TransferService(
            replace(target, chunk_size_mib=1), storage_client=mock_storage
        )
        paths = [make_file(f"file-{n}.bin", (3 + n) * MIB + n) for n in range(4)]
        errors: list[BaseException] = []

        def worker(path: str, key: str) -> None:
            try:
                service.upload(path, key)
            except BaseException as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [
            threading.Thread(target=worker, args=(path, f"my/path/{n}"))
            for n, path in enumerate(paths)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        for n, path in enumerate(paths):
            with open(path, "rb") as fp:
                assert mock_storage.get_object(f"my/path/{n}") == fp.read()
        for complete in mock_storage.calls_to("complete_multipart_upload"):
            numbers = complete["part_numbers"]
            assert numbers == list(range(1, len(numbers) + 1))


class TestProgressMilestones:
    def test_ten_parts_map_one_to_one(self):
        assert progress_milestones(10) == [1, 2, 3, 4, 5, 6, 7, 8, 9]

    def test_few_parts_collapse(self):
        assert progress_milestones(2) == [0, 0, 0, 0, 1, 1, 1, 1, 1]

    def test_collapsed_milestones_report_highest_percentage(
        self, service, mock_storage, make_file, caplog
    ):
        path = make_file("db.tar", 6 * MIB)

        with caplog.at_level(logging.INFO, logger="cloudio.transfer"):
            service.upload(path, "my/path/db.tar")

        progress = [
            r.extra["percent"]
            for r in caplog.records
            if "[event=upload_progress]" in r.getMessage()
        ]
        assert progress == [90]


class TestListObjects:
    def test_follows_pagination(self, service, mock_storage):
        keys = [f"backups/job1/file-{n:05d}" for n in range(1500)]
        mock_storage.add_objects(reversed(keys))
        mock_storage.add_objects(["backups/job10/other", "backups/job1"])

        objects = service.list_objects("backups/job1")

        assert len(objects) == 1500
        assert [obj.key for obj in objects] == keys
        lists = mock_storage.calls_to("list_objects")
        assert len(lists) == 2
        assert all(call["prefix"] == "backups/job1/" for call in lists)
        assert [call["continuation_token"] for call in lists] == [None, "1000"]

    def test_strips_trailing_separator(self, service, mock_storage):
        mock_storage.add_objects(["backups/job1/a"])

        objects = service.list_objects("backups/job1/")

        assert [obj.key for obj in objects] == ["backups/job1/a"]
        assert mock_storage.calls_to("list_objects")[0]["prefix"] == "backups/job1/"

    def test_empty_prefix_returns_empty_list(self, service):
        assert service.list_objects("nothing/here") == []

    def test_metadata_is_fetched_lazily_once(self, service, mock_storage):
        mock_storage.add_objects(["backups/job1/a"])
        [obj] = service.list_objects("backups/job1")

        assert mock_storage.calls_to("head_object") == []
        assert obj.metadata["etag"] == '"backups/job1/a"'
        assert obj.metadata["x-amz-storage-class"] == "STANDARD"
        assert len(mock_storage.calls_to("head_object")) == 1

    def test_list_failure_raises_transfer_error(self, service, mock_storage):
        mock_storage.failures["list_objects"] = StorageError("denied")

        with pytest.raises(TransferError, match="list_objects"):
            service.list_objects("backups/job1")


class TestDelete:
    def test_batches_by_one_thousand(self, service, mock_storage):
        keys = [f"backups/job1/{n}" for n in range(2500)]

        service.delete(keys)

        batches = mock_storage.calls_to("delete_objects")
        assert [len(call["object_keys"]) for call in batches] == [1000, 1000, 500]
        assert [key for call in batches for key in call["object_keys"]] == keys

    def test_accepts_remote_objects_and_single_key(self, service, mock_storage):
        mock_storage.add_objects(["a/1", "a/2", "a/3"])
        objects = service.list_objects("a")

        service.delete(objects[:2])
        service.delete("a/3")

        assert mock_storage.objects == {}
        assert [c["object_keys"] for c in mock_storage.calls_to("delete_objects")] == [
            ["a/1", "a/2"],
            ["a/3"],
        ]

    def test_delete_is_idempotent(self, service, mock_storage):
        mock_storage.add_objects(["a/1", "a/2"])

        service.delete(["a/1", "a/2"])
        service.delete(["a/1", "a/2"])

        assert len(mock_storage.calls_to("delete_objects")) == 2

    def test_empty_input_makes_no_call(self, service, mock_storage):
        service.delete([])

        assert mock_storage.calls == []

    def test_batch_failure_raises_transfer_error(self, service, mock_storage):
        mock_storage.failures["delete_objects"] = StorageError("denied")

        with pytest.raises(TransferError, match="delete_objects"):
            service.delete(["a/1"])


def _sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetrics:
    def test_multipart_upload_counts_bytes_and_parts(
        self, service, mock_storage, make_file
    ):
        bytes_before = _sample("cloudio_transfer_bytes_total", mode="multipart")
        parts_before = _sample("cloudio_transfer_parts_total")
        path = make_file("db.tar", 6 * MIB)

        service.upload(path, "my/path/db.tar")

        assert _sample("cloudio_transfer_bytes_total", mode="multipart") - bytes_before == 6 * MIB
        assert _sample("cloudio_transfer_parts_total") - parts_before == 2

    def test_single_shot_counts_bytes(self, service, mock_storage, make_file):
        before = _sample("cloudio_transfer_bytes_total", mode="single_shot")
        path = make_file("small.tar", 1024)

        service.upload(path, "my/path/small.tar")

        assert _sample("cloudio_transfer_bytes_total", mode="single_shot") - before == 1024

    def test_failure_is_counted_by_operation(self, service, mock_storage, make_file):
        before = _sample("cloudio_transfer_failures_total", operation="put_object")
        mock_storage.failures["put_object"] = StorageError("connection reset")
        path = make_file("small.tar", 10)

        with pytest.raises(TransferError):
            service.upload(path, "my/path/small.tar")

        assert _sample("cloudio_transfer_failures_total", operation="put_object") - before == 1

    def test_deleted_keys_are_counted(self, service, mock_storage):
        before = _sample("cloudio_deleted_objects_total")

        service.delete([f"a/{n}" for n in range(1500)])

        assert _sample("cloudio_deleted_objects_total") - before == 1500


def test_remote_object_equality_ignores_metadata_source():
    first = RemoteObject("k", "e", "STANDARD", fetch_metadata=lambda key: {})
    second = RemoteObject("k", "e", "STANDARD")

    assert first == second
    assert len({first, second}) == 1
