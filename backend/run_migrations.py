from __future__ import annotations

import argparse
import logging
import sys

from bootstrap import (
    MIGRATION_MARKER_KEY,
    clear_bootstrap_marker,
    has_bootstrap_marker,
    normalize_stored_programs,
    run_bootstrap_migrations,
    set_bootstrap_marker,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Bring the PanelEvent schema up to date and upgrade stored event programs."
    )
    parser.add_argument("--force", action="store_true", help="Run even if the bootstrap marker already exists.")
    parser.add_argument(
        "--clear-marker",
        action="store_true",
        help=f"Delete the `{MIGRATION_MARKER_KEY}` marker before running.",
    )
    parser.add_argument("--clear-only", action="store_true", help="Delete the marker and exit.")

    programs = parser.add_mutually_exclusive_group()
    programs.add_argument(
        "--skip-program-normalization",
        action="store_true",
        help="Apply schema changes but leave flat-string program blobs in their stored shape.",
    )
    programs.add_argument(
        "--programs-only",
        action="store_true",
        help="Only convert flat-string program blobs; no schema changes, marker untouched.",
    )
    programs.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many program blobs would be converted, unchanged or unreadable, and write nothing.",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.dry_run or args.programs_only:
        stats = normalize_stored_programs(dry_run=args.dry_run)
        # Unreadable blobs need a manual look; surface them in the exit code.
        return 1 if stats["unreadable"] else 0

    if args.clear_marker or args.clear_only:
        if clear_bootstrap_marker():
            logger.info("Removed `%s`.", MIGRATION_MARKER_KEY)
        else:
            logger.info("No `%s` marker to remove.", MIGRATION_MARKER_KEY)
        if args.clear_only:
            return 0

    if has_bootstrap_marker() and not args.force:
        logger.info("Schema already bootstrapped (`%s`); pass --force to rerun.", MIGRATION_MARKER_KEY)
        return 0

    logger.info("Applying PanelEvent schema migrations...")
    run_bootstrap_migrations(normalize_programs=not args.skip_program_normalization)
    set_bootstrap_marker()
    logger.info("Schema up to date; `%s` recorded.", MIGRATION_MARKER_KEY)
    return 0


if __name__ == "__main__":
    sys.exit(main())
