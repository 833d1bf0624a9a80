#!/usr/bin/env python
"""Run one arena backfill pass from the command line.

Run from the project root::

    python scripts/backfill_arenas.py --limit 200 --dry-run

Selects up to ``--limit`` eligible projects whose ms arena is missing or
out of date, reconciles each one in its own transaction, and prints the
summary as JSON.  With ``--dry-run`` every transaction is rolled back, so
the printed counts show exactly what a real run would do.

Usage::

    python scripts/backfill_arenas.py [--limit N] [--after CURSOR] [--dry-run] [--approver-id UUID]

Options:
    --limit        Maximum projects to process (default: BACKFILL_DEFAULT_LIMIT).
    --after        nextCursor printed by the previous page; resumes behind it.
    --dry-run      Compute the outcome without persisting anything.
    --approver-id  Profile UUID recorded as created_by on new arenas.

Exit codes:
    0: The pass ran and no project failed.
    1: Invalid arguments or the pass could not run.
    2: The pass ran but at least one project failed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure the src layout is on sys.path when run as a standalone script.
_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_SRC_DIR = os.path.join(os.path.dirname(_SCRIPT_DIR), "src")
if _SRC_DIR not in sys.path:
    sys.path.insert(0, _SRC_DIR)


async def _run(
    limit: int | None, after: str | None, dry_run: bool, approver_id: str | None
) -> int:
    """Run the pass and print its summary.

    Returns:
        The process exit code.
    """
    from arena_reconciler.config.settings import get_settings  # noqa: PLC0415
    from arena_reconciler.core.exceptions import InvalidInputError  # noqa: PLC0415
    from arena_reconciler.core.logging_config import configure_logging  # noqa: PLC0415
    from arena_reconciler.workers._task_helpers import run_backfill  # noqa: PLC0415

    configure_logging(get_settings().log_level)
    try:
        result = await run_backfill(
            limit=limit, dry_run=dry_run, approved_by=approver_id, after=after
        )
    except (InvalidInputError, ValueError) as exc:
        print(f"[backfill_arenas] ERROR: {exc}", file=sys.stderr)
        return 1

    print(json.dumps({"ok": True, **result}, indent=2))
    return 2 if result["summary"]["errors"] else 0


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed ``argparse.Namespace`` with ``limit``, ``after``, ``dry_run``
        and ``approver_id`` attributes.
    """
    parser = argparse.ArgumentParser(
        description="Create or repair leaderboard arenas for eligible projects.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of projects to process in this pass.",
    )
    parser.add_argument(
        "--after",
        default=None,
        help="Resume behind this cursor (the nextCursor of the previous page).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Run the full decision logic and roll every transaction back.",
    )
    parser.add_argument(
        "--approver-id",
        default=None,
        help="Profile UUID recorded as created_by on arenas this pass creates.",
    )
    return parser.parse_args()


def main() -> None:
    """Entry point for the backfill script."""
    args = _parse_args()
    sys.exit(
        asyncio.run(
            _run(
                limit=args.limit,
                after=args.after,
                dry_run=args.dry_run,
                approver_id=args.approver_id,
            )
        )
    )


if __name__ == "__main__":
    main()
