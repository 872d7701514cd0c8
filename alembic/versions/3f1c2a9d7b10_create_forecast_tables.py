"""create forecast tables

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1c2a9d7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    """Create forecasts and forecast_analysis with composite primary keys."""
    op.create_table(
        "forecasts",
        sa.Column("storage_date", sa.Date(), nullable=False),
        sa.Column("station_id", sa.String(length=32), nullable=False),
        sa.Column("forecast_date", sa.Date(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("temp_min", sa.Float(), nullable=True),
        sa.Column("temp_max", sa.Float(), nullable=True),
        sa.Column("precipitation", sa.Float(), nullable=True),
        sa.Column("wind_speed", sa.Float(), nullable=True),
        sa.Column("wind_gust", sa.Float(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("storage_date", "station_id", "forecast_date", "source"),
    )
    op.create_index("ix_forecasts_station_forecast_date", "forecasts", ["station_id", "forecast_date"])

    op.create_table(
        "forecast_analysis",
        sa.Column("analysis_date", sa.Date(), nullable=False),
        sa.Column("station_id", sa.String(length=32), nullable=False),
        sa.Column("forecast_date", sa.Date(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("storage_date", sa.Date(), nullable=True),
        sa.Column("temp_min_error", sa.Float(), nullable=True),
        sa.Column("temp_max_error", sa.Float(), nullable=True),
        sa.Column("precipitation_error", sa.Float(), nullable=True),
        sa.Column("wind_speed_error", sa.Float(), nullable=True),
        sa.Column("actual_temp_min", sa.Float(), nullable=True),
        sa.Column("actual_temp_max", sa.Float(), nullable=True),
        sa.Column("actual_precipitation", sa.Float(), nullable=True),
        sa.Column("actual_wind_speed", sa.Float(), nullable=True),
        sa.Column("forecast_temp_min", sa.Float(), nullable=True),
        sa.Column("forecast_temp_max", sa.Float(), nullable=True),
        sa.Column("forecast_precipitation", sa.Float(), nullable=True),
        sa.Column("forecast_wind_speed", sa.Float(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("analysis_date", "station_id", "forecast_date", "source"),
    )
    op.create_index("ix_forecast_analysis_station_date", "forecast_analysis", ["station_id", "forecast_date"])


def downgrade() -> None:
    """Drop both forecast tables."""
    op.drop_index("ix_forecast_analysis_station_date", table_name="forecast_analysis")
    op.drop_table("forecast_analysis")
    op.drop_index("ix_forecasts_station_forecast_date", table_name="forecasts")
    op.drop_table("forecasts")
