"""Tests for the transfer_files command line script."""

from __future__ import annotations

import pytest

from cloudio.app.services.base import NotFoundError
from scripts import transfer_files


class FakeSession:
    def __init__(self, settings):
        self.settings = settings
        self.transferred = []
        self.removed = []
        FakeSession.instance = self

    def remote_path(self, package):
        return f"backups/{package.trigger}/{package.time}"

    def transfer(self, package, *, source_dir=None):
        self.transferred.append((package, source_dir))

    def remove(self, package):
        if package.time == "missing":
            raise NotFoundError(f"Package at '{self.remote_path(package)}' not found")
        self.removed.append(package)
        return ["obj"]


@pytest.fixture(autouse=True)
def environment(monkeypatch, tmp_path):
    monkeypatch.setattr("cloudio.common.config.ENV_FILE", tmp_path / ".env")
    monkeypatch.setenv("S3_BUCKET", "my_bucket")
    monkeypatch.setenv("S3_USE_IAM_PROFILE", "true")
    monkeypatch.setenv("LOG_FORMAT", "plain")
    monkeypatch.setattr(transfer_files, "StorageSession", FakeSession)


def test_store_builds_package(capsys):
    code = transfer_files.main(
        ["store", "nightly", "a.tar", "b.tar", "--time", "2026.10.18", "--source-dir", "/tmp/x"]
    )

    assert code == 0
    package, source_dir = FakeSession.instance.transferred[0]
    assert package.trigger == "nightly"
    assert package.time == "2026.10.18"
    assert package.filenames == ("a.tar", "b.tar")
    assert source_dir == "/tmp/x"
    assert "Stored 2 files under backups/nightly/2026.10.18" in capsys.readouterr().out


def test_remove_reports_count(capsys):
    code = transfer_files.main(["remove", "nightly", "2026.10.18"])

    assert code == 0
    assert "Removed 1 objects" in capsys.readouterr().out


def test_missing_package_exits_nonzero(capsys):
    code = transfer_files.main(["remove", "nightly", "missing"])

    assert code == 1
    assert "Package at 'backups/nightly/missing' not found" in capsys.readouterr().err
