#!/usr/bin/env python3
"""Purge keyword checkpoint namespaces that have not been touched in N days."""

import argparse
import shutil
import time
from pathlib import Path


def newest_mtime(directory: Path) -> float:
    """Most recent modification time of any file under a directory."""
    mtimes = [p.stat().st_mtime for p in directory.rglob("*") if p.is_file()]
    return max(mtimes, default=directory.stat().st_mtime)


def purge(output_dir: Path, days: int, dry_run: bool = False) -> list[Path]:
    """Delete `<engine>/<keyword>/` directories whose newest file is older than N days."""
    cutoff = time.time() - days * 86400
    purged: list[Path] = []

    if not output_dir.exists():
        return purged

    for engine_dir in sorted(p for p in output_dir.iterdir() if p.is_dir()):
        for keyword_dir in sorted(p for p in engine_dir.iterdir() if p.is_dir()):
            if newest_mtime(keyword_dir) < cutoff:
                if not dry_run:
                    shutil.rmtree(keyword_dir)
                purged.append(keyword_dir)

    return purged


def main() -> None:
    parser = argparse.ArgumentParser(description="Purge old suggest-miner checkpoints")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Checkpoint root directory (default: output)",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=30,
        help="Delete namespaces untouched for this many days (default: 30)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List what would be deleted without deleting",
    )
    args = parser.parse_args()

    purged = purge(args.output_dir, args.days, dry_run=args.dry_run)
    verb = "Would delete" if args.dry_run else "Deleted"
    for path in purged:
        print(f"  {path}")
    print(f"{verb} {len(purged)} checkpoint namespace(s) older than {args.days} days")


if __name__ == "__main__":
    main()
