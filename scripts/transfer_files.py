#!/usr/bin/env python3
"""Store or remove a backup package in the configured bucket.

Usage:
  .venv/bin/python scripts/transfer_files.py store nightly --source-dir tmp db.tar-aa db.tar-ab
  .venv/bin/python scripts/transfer_files.py remove nightly 2026.10.18.03.00.00

Connection settings come from the environment (S3_BUCKET, S3_PATH, ...).
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime

from prometheus_client import start_http_server

from cloudio.app.services.base import ServiceError
from cloudio.app.services.storage_session import StorageSession
from cloudio.common.config import get_settings
from cloudio.common.logging import setup_logging
from cloudio.domain.models import BackupPackage


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Transfer backup packages to S3")
    subparsers = parser.add_subparsers(dest="command", required=True)

    store = subparsers.add_parser("store", help="Upload package files")
    store.add_argument("trigger", help="Backup trigger name")
    store.add_argument("filenames", nargs="+", help="Package file names")
    store.add_argument(
        "--source-dir",
        default=None,
        help="Directory holding the package files (default: TMP_PATH)",
    )
    store.add_argument(
        "--time",
        default=None,
        help="Package timestamp (default: now, formatted %%Y.%%m.%%d.%%H.%%M.%%S)",
    )

    remove = subparsers.add_parser("remove", help="Delete a stored package")
    remove.add_argument("trigger", help="Backup trigger name")
    remove.add_argument("time", help="Package timestamp")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.LOG_FORMAT)
    if settings.METRICS_PORT:
        start_http_server(settings.METRICS_PORT)

    session = StorageSession(settings)
    try:
        if args.command == "store":
            timestamp = args.time or datetime.now().strftime("%Y.%m.%d.%H.%M.%S")
            package = BackupPackage(
                trigger=args.trigger, time=timestamp, filenames=tuple(args.filenames)
            )
            session.transfer(package, source_dir=args.source_dir)
            print(
                f"Stored {len(package.filenames)} files under "
                f"{session.remote_path(package)}"
            )
        else:
            package = BackupPackage(trigger=args.trigger, time=args.time)
            removed = session.remove(package)
            print(f"Removed {len(removed)} objects under {session.remote_path(package)}")
    except ServiceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
