#!/usr/bin/env python3
"""Delete every object under a prefix of the configured bucket.

Usage:
  .venv/bin/python scripts/purge_prefix.py backups/nightly --dry-run
  .venv/bin/python scripts/purge_prefix.py backups/nightly

Use --dry-run to preview the number of objects that would be deleted.
"""

from __future__ import annotations

import argparse

from cloudio.app.services.transfer_service import TransferService
from cloudio.common.config import get_settings
from cloudio.common.logging import setup_logging
from cloudio.domain.models import TransferTarget


def purge_prefix(
    prefix: str, *, dry_run: bool = False, service: TransferService | None = None
) -> int:
    if service is None:
        service = TransferService(TransferTarget.from_settings(get_settings()))
    objects = service.list_objects(prefix)
    if dry_run or not objects:
        return len(objects)
    service.delete(objects)
    return len(objects)


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete all objects under a prefix")
    parser.add_argument("prefix", help="Key prefix, e.g. backups/nightly")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print would-be deleted object count without deleting",
    )
    args = parser.parse_args()
    setup_logging(get_settings().LOG_FORMAT)
    count = purge_prefix(args.prefix, dry_run=args.dry_run)
    if args.dry_run:
        print(f"[DRY-RUN] {count} objects would be deleted")
    else:
        print(f"Deleted {count} objects")


if __name__ == "__main__":
    main()
