# Forecast providers package

from stationdash.providers.base import ForecastProvider, ForecastSourceError
from stationdash.providers.geosphere import GeosphereProvider
from stationdash.providers.openweather import OpenWeatherProvider
from stationdash.providers.meteoblue import MeteoblueProvider
from stationdash.providers.openmeteo import OpenMeteoProvider

# Processing order of the daily store run
PROVIDERS = [
    GeosphereProvider(),
    OpenWeatherProvider(),
    MeteoblueProvider(),
    OpenMeteoProvider(),
]

__all__ = [
    "ForecastProvider",
    "ForecastSourceError",
    "GeosphereProvider",
    "OpenWeatherProvider",
    "MeteoblueProvider",
    "OpenMeteoProvider",
    "PROVIDERS",
]
