"""
Delete forecast analysis rows analysed before a cutoff day.

Usage:
    python scripts/cleanup_forecast_analysis.py --before 2024-01-01
    python scripts/cleanup_forecast_analysis.py --keep-days 365
"""

import argparse
import asyncio
import sys
from datetime import date, timedelta
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from stationdash.database import async_session
from stationdash.services.forecast import cleanup_forecast_analysis, local_today
from stationdash.utils.logging_config import setup_logging, get_logger

# Setup logging
setup_logging()
logger = get_logger(__name__)


async def cleanup(before: date) -> int:
    async with async_session() as db:
        return await cleanup_forecast_analysis(db, before)


def main():
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        description="Delete old forecast analysis rows"
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        '--before',
        type=date.fromisoformat,
        help='Delete rows analysed before this day (YYYY-MM-DD)'
    )
    group.add_argument(
        '--keep-days',
        type=int,
        help='Keep only the last N days of analysis'
    )

    args = parser.parse_args()
    cutoff = args.before or local_today() - timedelta(days=args.keep_days)

    deleted = asyncio.run(cleanup(cutoff))
    logger.info(f"Done: {deleted} rows removed (cutoff {cutoff.isoformat()})")


if __name__ == "__main__":
    main()
