"""Utility to upgrade saved engine snapshots to the current format."""

from __future__ import annotations

import argparse
import json
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import structlog

from srs_engine.log import configure_logging
from srs_engine.snapshot import VERSION, MigrationError, migrate

logger = structlog.get_logger(__name__)


def _iter_snapshot_files(paths: Iterable[Path]) -> Iterator[Path]:
    for root in paths:
        if not root.exists():
            logger.warning("snapshot_path_missing", path=str(root))
            continue
        if root.is_file() and root.suffix.lower() == ".json":
            yield root
        elif root.is_dir():
            for candidate in sorted(root.rglob("*.json")):
                if candidate.is_file():
                    yield candidate


def migrate_file(path: Path, dry_run: bool = False, allow_unknown_version: bool = False) -> bool:
    """Rewrite the snapshot at *path* at :data:`VERSION`.

    Returns ``True`` when the file needed changes. Raises
    :class:`MigrationError` when the file cannot be migrated.
    """

    with path.open("r", encoding="utf-8") as handle:
        payload: Dict[str, Any] = json.load(handle)

    migrated = migrate(payload, allow_unknown_version=allow_unknown_version)
    changed = migrated != payload
    if changed and not dry_run:
        with path.open("w", encoding="utf-8") as handle:
            json.dump(migrated, handle, indent=4)
    return changed


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"Upgrade scheduling engine snapshot JSON files to version {VERSION}."
    )
    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Snapshot files or directories to process.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report changes without writing updated files.",
    )
    parser.add_argument(
        "--allow-unknown-version",
        action="store_true",
        help="Migrate snapshots with unrecognised versions instead of skipping them.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level for diagnostics written to stderr (default: WARNING).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, json=False)

    updated: List[Path] = []
    failed: List[Path] = []
    for file_path in _iter_snapshot_files(args.paths):
        try:
            if migrate_file(file_path, dry_run=args.dry_run, allow_unknown_version=args.allow_unknown_version):
                updated.append(file_path)
        except (MigrationError, json.JSONDecodeError) as exc:
            logger.warning("snapshot_migration_failed", path=str(file_path), error=str(exc))
            failed.append(file_path)

    action = "would update" if args.dry_run else "updated"
    if updated:
        print(f"{action.capitalize()} {len(updated)} file(s):")
        for file_path in updated:
            print(f" - {file_path}")
    else:
        print("No changes required.")

    if failed:
        print(f"Failed to migrate {len(failed)} file(s):")
        for file_path in failed:
            print(f" - {file_path}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
