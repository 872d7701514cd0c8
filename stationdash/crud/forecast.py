"""
CRUD operations for stored forecasts and forecast analysis rows.
"""

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import and_, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from stationdash.crud.base import CRUDBase
from stationdash.models.forecast import Forecast, ForecastAnalysis
from stationdash.schemas.forecast import ForecastDay


class CRUDForecast(CRUDBase[Forecast]):
    """CRUD operations for the forecasts table."""

    async def upsert_days(
        self,
        db: AsyncSession,
        *,
        storage_date: date,
        station_id: str,
        source: str,
        days: Iterable[ForecastDay],
    ) -> int:
        """
        Store one provider's daily forecasts for a station.

        Re-running on the same storage date overwrites the earlier values.

        Args:
            db: Database session
            storage_date: Day the forecast was fetched
            station_id: Station identifier
            source: Provider name
            days: Normalized daily forecasts

        Returns:
            Number of rows written
        """
        rows = [
            {
                "storage_date": storage_date,
                "station_id": station_id,
                "forecast_date": day.date,
                "source": source,
                "temp_min": day.temp_min,
                "temp_max": day.temp_max,
                "precipitation": day.precipitation,
                "wind_speed": day.wind_speed,
                "wind_gust": day.wind_gust,
            }
            for day in days
        ]
        return await self.upsert(db, rows=rows)

    async def get_latest_for_date(
        self,
        db: AsyncSession,
        *,
        station_id: str,
        forecast_date: date,
    ) -> List[Forecast]:
        """
        Get the freshest stored forecast per source for one forecast day.

        Only forecasts stored on or before the forecast day count; for each
        source the row with the latest storage date wins.

        Args:
            db: Database session
            station_id: Station identifier
            forecast_date: Day that was forecast

        Returns:
            One Forecast per source, ordered by source
        """
        latest = (
            select(
                Forecast.source.label("source"),
                func.max(Forecast.storage_date).label("latest_storage_date"),
            )
            .where(
                and_(
                    Forecast.station_id == station_id,
                    Forecast.forecast_date == forecast_date,
                    Forecast.storage_date <= forecast_date,
                )
            )
            .group_by(Forecast.source)
            .subquery()
        )

        result = await db.execute(
            select(Forecast)
            .join(
                latest,
                and_(
                    Forecast.source == latest.c.source,
                    Forecast.storage_date == latest.c.latest_storage_date,
                ),
            )
            .where(
                and_(
                    Forecast.station_id == station_id,
                    Forecast.forecast_date == forecast_date,
                )
            )
            .order_by(Forecast.source)
        )
        return list(result.scalars().all())

    async def get_by_storage_date(
        self,
        db: AsyncSession,
        *,
        station_id: str,
        storage_date: date,
    ) -> List[Forecast]:
        """Get everything stored for a station on one day."""
        result = await db.execute(
            select(Forecast)
            .where(
                and_(
                    Forecast.station_id == station_id,
                    Forecast.storage_date == storage_date,
                )
            )
            .order_by(Forecast.source, Forecast.forecast_date)
        )
        return list(result.scalars().all())


class CRUDForecastAnalysis(CRUDBase[ForecastAnalysis]):
    """CRUD operations for the forecast_analysis table."""

    async def upsert_records(self, db: AsyncSession, *, rows: List[dict]) -> int:
        """Insert or overwrite analysis rows for their (date, station, day, source) keys."""
        return await self.upsert(db, rows=rows)

    async def get_for_station(
        self,
        db: AsyncSession,
        *,
        station_id: str,
        since: Optional[date] = None,
    ) -> List[ForecastAnalysis]:
        """
        Get analysis rows for a station, newest forecast day first.

        Args:
            db: Database session
            station_id: Station identifier
            since: Only rows with forecast_date on or after this day

        Returns:
            List of analysis rows
        """
        query = select(ForecastAnalysis).where(ForecastAnalysis.station_id == station_id)
        if since is not None:
            query = query.where(ForecastAnalysis.forecast_date >= since)
        result = await db.execute(
            query.order_by(ForecastAnalysis.forecast_date.desc(), ForecastAnalysis.source)
        )
        return list(result.scalars().all())

    async def delete_before(self, db: AsyncSession, *, cutoff: date) -> int:
        """
        Delete analysis rows whose analysis date is before the cutoff.

        Returns:
            Number of rows deleted
        """
        result = await db.execute(
            delete(ForecastAnalysis).where(ForecastAnalysis.analysis_date < cutoff)
        )
        await db.commit()
        return result.rowcount or 0


forecast = CRUDForecast(Forecast)
forecast_analysis = CRUDForecastAnalysis(ForecastAnalysis)
