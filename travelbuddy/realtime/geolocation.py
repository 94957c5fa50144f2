"""Device position lookup with a fixed fallback location."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from travelbuddy.errors import GeolocationError
from travelbuddy.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


# Tokyo
FALLBACK_COORDINATES = Coordinates(latitude=35.6762, longitude=139.6503)


class GeolocationProvider(ABC):
    """Source of the device's current position."""

    @abstractmethod
    async def current_position(self) -> Coordinates:
        """
        Raises:
            GeolocationError: If the position is unavailable or denied
        """
        pass


class StaticGeolocation(GeolocationProvider):
    """Always reports the same position."""

    def __init__(self, latitude: float, longitude: float):
        self._coordinates = Coordinates(latitude, longitude)

    async def current_position(self) -> Coordinates:
        return self._coordinates


class DeniedGeolocation(GeolocationProvider):
    """Behaves like a user who refused the location prompt."""

    async def current_position(self) -> Coordinates:
        raise GeolocationError("User denied Geolocation")


async def resolve_coordinates(
    provider: Optional[GeolocationProvider],
    timeout_s: float = 10.0,
    fallback: Coordinates = FALLBACK_COORDINATES,
) -> Coordinates:
    """
    Get the device position, or the fallback when there is no provider, the
    lookup fails, or it takes longer than ``timeout_s``.
    """
    if provider is None:
        logger.info("Geolocation unavailable, using fallback location")
        return fallback

    try:
        return await asyncio.wait_for(provider.current_position(), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning(f"Geolocation timed out after {timeout_s:.0f}s, using fallback location")
    except GeolocationError as e:
        logger.warning(f"Geolocation failed ({e.message}), using fallback location")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.exception(f"Geolocation provider error ({e!r}), using fallback location")
    return fallback
