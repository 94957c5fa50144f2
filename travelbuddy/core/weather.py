"""
Weather Provider Module

Fetches current weather for a coordinate pair and maps it to a
``WeatherSnapshot``.

Architecture:
- WeatherSnapshot: Immutable reading shared by relay and client
- WeatherProvider: Abstract base class defining the interface
- OpenWeatherMapProvider: Concrete implementation for OpenWeatherMap

Usage:
    from travelbuddy.core.weather import OpenWeatherMapProvider

    provider = OpenWeatherMapProvider(WeatherConfig(api_key="..."))
    snapshot = await provider.current(35.6762, 139.6503, language="ja")
    print(snapshot.location, snapshot.temperature_celsius)
"""

import asyncio
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from travelbuddy.config import WeatherConfig
from travelbuddy.errors import ProviderError
from travelbuddy.logger import get_logger
from travelbuddy.messages import msg

logger = get_logger(__name__)


class WeatherSnapshot(BaseModel):
    """
    A single current-weather reading.

    Field aliases are the wire names used by the browser client.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    location: str
    temperature_celsius: int = Field(alias="temperature")
    condition: str
    condition_main: str = Field(alias="conditionMain")
    humidity: int
    icon_id: str = Field(alias="icon")

    def to_wire(self) -> Dict[str, Any]:
        """Serialize using wire field names."""
        return self.model_dump(by_alias=True)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up."""
    return int(math.floor(value + 0.5))


def snapshot_from_payload(data: Dict[str, Any]) -> WeatherSnapshot:
    """
    Map an OpenWeatherMap current-weather payload to a snapshot.

    Only the first ``weather`` entry is used.

    Raises:
        ProviderError: If required fields are missing or malformed
    """
    try:
        condition = data["weather"][0]
        main = data["main"]
        return WeatherSnapshot(
            location=data.get("name") or "",
            temperature_celsius=round_half_up(float(main["temp"])),
            condition=condition["description"],
            condition_main=condition["main"],
            humidity=int(main["humidity"]),
            icon_id=condition["icon"],
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning(f"Unexpected weather payload: {e}")
        raise ProviderError(msg("error.weather_malformed")) from e


class WeatherProvider(ABC):
    """
    Abstract base class for weather providers.
    """

    @abstractmethod
    async def current(
        self,
        latitude: float,
        longitude: float,
        language: Optional[str] = None,
    ) -> WeatherSnapshot:
        """
        Fetch the current weather.

        Args:
            latitude: Latitude in degrees
            longitude: Longitude in degrees
            language: Language for the condition description

        Returns:
            WeatherSnapshot for the location

        Raises:
            ProviderError: If the upstream call fails
        """
        pass


class OpenWeatherMapProvider(WeatherProvider):
    """
    OpenWeatherMap current weather (``/data/2.5/weather``) provider.

    Always requests the configured unit system (metric by default) so
    temperatures come back in Celsius.
    """

    def __init__(self, config: Optional[WeatherConfig] = None):
        self._config = config or WeatherConfig()

    async def current(
        self,
        latitude: float,
        longitude: float,
        language: Optional[str] = None,
    ) -> WeatherSnapshot:
        params = {
            "lat": str(latitude),
            "lon": str(longitude),
            "units": self._config.units,
            "lang": language or self._config.language,
            "appid": self._config.api_key,
        }
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self._config.url, params=params) as response:
                    if response.status != 200:
                        logger.warning(f"Weather provider HTTP {response.status}")
                        raise ProviderError(msg("error.weather_http", status=response.status))
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise ProviderError(f"Weather request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise ProviderError("Weather request timed out") from e

        if not isinstance(data, dict):
            raise ProviderError(msg("error.weather_malformed"))
        return snapshot_from_payload(data)
