"""
Store forecasts and/or run forecast accuracy analysis from the command line.

Usage:
    python scripts/run_forecast_analysis.py                      # store + analyse yesterday
    python scripts/run_forecast_analysis.py --analyze-only
    python scripts/run_forecast_analysis.py --date 2024-07-15 --analyze-only
    python scripts/run_forecast_analysis.py --backfill 30
    python scripts/run_forecast_analysis.py --station-id 11035
"""

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from stationdash.config import settings
from stationdash.database import async_session, create_tables
from stationdash.services.forecast import (
    backfill_forecast_analysis,
    calculate_and_store_daily_analysis,
    store_forecast_for_station,
    summarize_accuracy,
)
from stationdash.crud.forecast import forecast_analysis as analysis_crud
from stationdash.utils.logging_config import setup_logging, get_logger

# Setup logging
setup_logging()
logger = get_logger(__name__)


async def run(station_id: str, analysis_date, analyze_only: bool, backfill_days: int):
    """Run the requested forecast steps for one station."""
    await create_tables()
    async with async_session() as db:
        if backfill_days:
            summary = await backfill_forecast_analysis(db, station_id, backfill_days)
            analysed = sum(1 for count in summary.values() if count)
            logger.info(f"Backfill done: {analysed}/{len(summary)} days analysed")
        else:
            if not analyze_only:
                result = await store_forecast_for_station(db, station_id)
                logger.info(f"Stored: {result.stored} | errors: {result.errors} | skipped: {result.skipped}")
            rows = await calculate_and_store_daily_analysis(db, station_id, analysis_date=analysis_date)
            if rows is None:
                logger.warning("Analysis skipped: no measured data for the analysis day")

        records = await analysis_crud.get_for_station(db, station_id=station_id)
        for accuracy in summarize_accuracy(records):
            logger.info(
                f"{accuracy.source:12s} days={accuracy.days:3d} "
                f"tmin MAE={accuracy.temp_min.mae} tmax MAE={accuracy.temp_max.mae} "
                f"precip MAE={accuracy.precipitation.mae} wind MAE={accuracy.wind_speed.mae}"
            )


def main():
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        description="Store multi-source forecasts and analyse their accuracy"
    )
    parser.add_argument(
        '--station-id',
        type=str,
        default=settings.FORECAST_STATION_ID,
        help=f'Station id (default: {settings.FORECAST_STATION_ID})'
    )
    parser.add_argument(
        '--date',
        type=date.fromisoformat,
        help='Day to analyse, YYYY-MM-DD (default: yesterday)'
    )
    parser.add_argument(
        '--analyze-only',
        action='store_true',
        help='Skip fetching and storing forecasts'
    )
    parser.add_argument(
        '--backfill',
        type=int,
        default=0,
        metavar='DAYS',
        help='Analyse each of the last DAYS days instead'
    )

    args = parser.parse_args()

    asyncio.run(run(
        station_id=args.station_id,
        analysis_date=args.date,
        analyze_only=args.analyze_only,
        backfill_days=args.backfill,
    ))


if __name__ == "__main__":
    main()
