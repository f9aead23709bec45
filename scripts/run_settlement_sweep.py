#!/usr/bin/env python3
"""
Run a settlement sweep from the command line.

Usage:
    python scripts/run_settlement_sweep.py
    python scripts/run_settlement_sweep.py --as-of 2026-10-19T02:00:00+00:00
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger

from jobs.tasks.settlement_sweep import run_settlement_sweep
from jobs.utils.database import dispose_task_engine
from settlement.models.enums import SweepTrigger
from settlement.utils.exceptions import SweepAbortedError

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Release every pending scheduled day due by a cutoff"
    )
    parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="ISO-8601 cutoff, naive values are UTC (default: now)",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Run the sweep and print its report."""
    args = parse_args(argv)

    try:
        report = await run_settlement_sweep(args.as_of, trigger=SweepTrigger.SCRIPT)
    except SweepAbortedError as e:
        logger.error(f"Sweep aborted: {e}")
        return 1
    finally:
        await dispose_task_engine()

    print(json.dumps(report.to_dict(), indent=2))
    return 2 if report.has_errors else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
