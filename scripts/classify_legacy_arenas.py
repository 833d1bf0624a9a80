#!/usr/bin/env python
"""Label unclassified arenas as ``legacy_ms``.

Run from the project root::

    python scripts/classify_legacy_arenas.py --dry-run

Only rows with no kind that belong to a project and have no competing ms
arena are labelled.  Projects holding several candidate rows are listed as
ambiguous and left untouched; resolve those by hand before applying
migration 002.

Exit codes:
    0: Success and no ambiguous projects.
    1: Database error.
    2: Success, but ambiguous projects remain.
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


async def _run(dry_run: bool) -> int:
    from sqlalchemy.exc import SQLAlchemyError  # noqa: PLC0415

    from arena_reconciler.config.settings import get_settings  # noqa: PLC0415
    from arena_reconciler.core.logging_config import configure_logging  # noqa: PLC0415
    from arena_reconciler.workers._task_helpers import (  # noqa: PLC0415
        run_legacy_classification,
    )

    configure_logging(get_settings().log_level)
    try:
        result = await run_legacy_classification(dry_run=dry_run)
    except SQLAlchemyError as exc:
        print(f"[classify_legacy_arenas] ERROR: {exc}", file=sys.stderr)
        return 1

    print(json.dumps({"ok": True, **result}, indent=2))
    return 2 if result["ambiguous"] else 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Classify legacy (unknown-kind) arenas as legacy_ms.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Count the rows that would be labelled without writing.",
    )
    return parser.parse_args()


def main() -> None:
    """Entry point for the classification script."""
    args = _parse_args()
    sys.exit(asyncio.run(_run(dry_run=args.dry_run)))


if __name__ == "__main__":
    main()
