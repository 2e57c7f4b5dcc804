#!/usr/bin/env python3
"""
Rewrite legacy vocabulary asset folders in stored lesson, question and game
content. Safe to run on every deploy; a second run changes nothing.
"""

import argparse

from thai_literacy.core.exceptions import DatabaseError
from thai_literacy.core.services.content_migration_service import ContentMigrationService
from thai_literacy.core.services.database import DatabaseService


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--db-path",
        help="SQLite database file (defaults to THAI_LMS_DB_PATH or the configured path)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report affected rows without writing",
    )
    return parser.parse_args(argv)


def migrate_content_paths(argv=None) -> int:
    args = parse_args(argv)
    db_service = DatabaseService(args.db_path)
    try:
        report = ContentMigrationService(db_service).run(dry_run=args.dry_run)
    except DatabaseError as e:
        print(f"[FAIL] Migration aborted: {e}")
        return 1
    finally:
        db_service.close()

    verb = "Would update" if args.dry_run else "Updated"
    print(f"[OK] {verb} {len(report.lessons)} lessons.")
    print(f"[OK] {verb} {len(report.questions)} questions.")
    print(f"[OK] {verb} {len(report.games)} games.")
    return 0


if __name__ == "__main__":
    raise SystemExit(migrate_content_paths())
