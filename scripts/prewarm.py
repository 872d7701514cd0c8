"""
Materialize every monthly export and rebuild the statistics cache.

Useful after copying a batch of historical CSV exports into RAW_DATA_DIR,
so the first dashboard request does not pay for the conversion.

Usage:
    python scripts/prewarm.py
    python scripts/prewarm.py --kind allsensors
    python scripts/prewarm.py --skip-statistics
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from stationdash.ingest.files import DatasetKind
from stationdash.ingest.materializer import ensure_batches_in_range
from stationdash.services.statistics import StatisticsUnavailableError, update_statistics
from stationdash.utils.logging_config import setup_logging, get_logger

# Setup logging
setup_logging()
logger = get_logger(__name__)


async def prewarm(kinds, skip_statistics: bool = False) -> int:
    """
    Materialize all batches of the given kinds, then recompute statistics.

    Returns:
        Process exit code
    """
    exit_code = 0
    for kind in kinds:
        batches = await ensure_batches_in_range(kind)
        logger.info(f"{kind.value}: {len(batches.paths)} batches ready, {len(batches.skipped)} skipped")
        for month, reason in sorted(batches.skipped.items()):
            logger.warning(f"  {month}: {reason}")
            exit_code = 1

    if not skip_statistics:
        try:
            payload = await update_statistics()
        except StatisticsUnavailableError as e:
            logger.error(f"Statistics could not be computed: {e}")
            return 2
        logger.info(f"Statistics cache rebuilt: {len(payload.years)} years")
    return exit_code


def main():
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        description="Materialize station exports and rebuild the statistics cache"
    )
    parser.add_argument(
        '--kind',
        choices=[k.value for k in DatasetKind],
        help='Only materialize one dataset kind (default: all)'
    )
    parser.add_argument(
        '--skip-statistics',
        action='store_true',
        help='Do not rebuild the statistics cache'
    )

    args = parser.parse_args()
    kinds = [DatasetKind(args.kind)] if args.kind else list(DatasetKind)

    sys.exit(asyncio.run(prewarm(kinds, skip_statistics=args.skip_statistics)))


if __name__ == "__main__":
    main()
