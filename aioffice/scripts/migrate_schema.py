#!/usr/bin/env python3
"""Migrate an AI Office store from the legacy schema to the current one.

Usage::

    python -m aioffice.scripts.migrate_schema [--database PATH] [--dry-run]

With no arguments the store configured through ``AIOFFICE_DB_PATH`` /
``AIOFFICE_DATA_DIR`` / ``AIOFFICE_SITE_ROOT`` is migrated.  The whole
rewrite runs in one exclusive transaction: on any error the store is left
exactly as it was and the command exits with status 1.

Safety checklist:

* Take the site down (``aioffice-toggle-site down``) so no page writes
  while the migration runs.
* Keep a copy of the store file until the new schema has been checked.
* The migration runs once; a second run against a migrated store fails
  without changing it.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from aioffice.config import get_settings
from aioffice.logs import configure_logging
from aioffice.migrations import run_migration
from aioffice.verify import verify_store


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Rename legacy columns and group chat history into conversations.",
    )
    parser.add_argument(
        "--database",
        "-d",
        default=str(settings.db_path),
        help="Path to the SQLite store (default: %(default)s)",
    )
    parser.add_argument(
        "--lock-timeout",
        type=float,
        default=settings.lock_timeout,
        help="Seconds to wait for other writers to release the store (default: %(default)s)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run every step, print the resulting schema, then roll back.",
    )
    parser.add_argument(
        "--no-verify",
        dest="verify",
        action="store_false",
        help="Skip the post-migration row count and integrity checks.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit log events as JSON")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(verbose=args.verbose, json=args.json_logs)

    result = run_migration(
        Path(args.database),
        lock_timeout=args.lock_timeout,
        dry_run=args.dry_run,
    )
    if not result.ok:
        return result.exit_code

    print("\nNew schema:" if not result.dry_run else "\nSchema after migration (not committed):")
    print(result.render_schema())

    if args.verify and not result.dry_run:
        outcomes = verify_store(result.db_path, result.stats, lock_timeout=args.lock_timeout)
        print("\nVerification:")
        print("\n".join(outcome.render() for outcome in outcomes))
        failed = [outcome for outcome in outcomes if not outcome.ok]
        if failed:
            print(f"\n{len(failed)} check(s) failed. Review the store before reopening the site.")

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
