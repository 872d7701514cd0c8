# CRUD operations package

from stationdash.crud.forecast import forecast, forecast_analysis

__all__ = ["forecast", "forecast_analysis"]
