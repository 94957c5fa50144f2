"""
Request clients for the relay's weather and suggestion services.

The wire protocol has no request IDs: a response is matched to a request
only by being the next response event of that kind. Each client therefore
allows a single request in flight and rejects a second one with
RequestInFlight.
"""

import asyncio
import math
from numbers import Real
from typing import Any, Dict, Optional

from pydantic import ValidationError

from travelbuddy.core.weather import WeatherSnapshot
from travelbuddy.errors import (
    ChannelUnavailable,
    InvalidArgument,
    ProviderError,
    RequestInFlight,
)
from travelbuddy.logger import get_logger
from travelbuddy.messages import msg
from .channel import RealtimeChannel
from .events import (
    AI_RESPONSE,
    DISCONNECT,
    GET_AI_RESPONSE,
    GET_WEATHER,
    WEATHER_RESPONSE,
    SuggestionResponse,
    WeatherResponse,
)

logger = get_logger(__name__)


class SingleFlightClient:
    """Send one request event and wait for the next matching response."""

    kind = ""
    request_event = ""
    response_event = ""

    def __init__(self, channel: RealtimeChannel):
        self._channel = channel
        self._pending: Optional[asyncio.Future] = None
        channel.on_event(self.response_event, self._on_response)
        channel.on_event(DISCONNECT, self._on_disconnect)

    @property
    def pending(self) -> bool:
        """Whether a request is outstanding."""
        return self._pending is not None

    async def _exchange(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._pending is not None:
            raise RequestInFlight(msg("error.request_pending", kind=self.kind))

        future = asyncio.get_running_loop().create_future()
        self._pending = future
        try:
            if not await self._channel.send(self.request_event, payload):
                raise ChannelUnavailable(msg("error.not_connected"))
            return await future
        finally:
            self._pending = None
            if future.done() and not future.cancelled():
                # mark any disconnect exception as retrieved
                future.exception()

    async def _on_response(self, payload: Dict[str, Any]) -> None:
        if self._pending is None or self._pending.done():
            logger.warning(f"Ignoring unsolicited {self.response_event}")
            return
        self._pending.set_result(payload)

    async def _on_disconnect(self, _payload: Dict[str, Any]) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(ChannelUnavailable(msg("error.not_connected")))


def _is_coordinate(value: Any, limit: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value) and -limit <= value <= limit


class WeatherLookupClient(SingleFlightClient):
    """
    Issues ``get-weather`` requests.

    Usage:
        client = WeatherLookupClient(channel)
        snapshot = await client.request(35.6762, 139.6503)
    """

    kind = "weather"
    request_event = GET_WEATHER
    response_event = WEATHER_RESPONSE

    async def request(self, latitude: float, longitude: float) -> WeatherSnapshot:
        """
        Fetch current weather for a coordinate pair.

        Raises:
            InvalidArgument: Coordinates are not finite numbers in range
            RequestInFlight: A weather request is already outstanding
            ChannelUnavailable: The channel is (or became) disconnected
            ProviderError: The relay reported failure or sent malformed data
        """
        if not (_is_coordinate(latitude, 90.0) and _is_coordinate(longitude, 180.0)):
            raise InvalidArgument(
                msg("error.coordinates_out_of_range", latitude=latitude, longitude=longitude)
            )

        logger.info(f"Requesting weather for ({latitude}, {longitude})")
        payload = await self._exchange({"latitude": latitude, "longitude": longitude})

        try:
            response = WeatherResponse.model_validate(payload)
        except ValidationError as e:
            raise ProviderError(msg("error.response_malformed", kind=self.kind)) from e

        if not response.success:
            raise ProviderError(response.error or msg("error.unknown"))
        if response.data is None:
            raise ProviderError(msg("error.response_malformed", kind=self.kind))
        return response.data


class SuggestionRequestClient(SingleFlightClient):
    """
    Issues ``get-ai-response`` requests.

    Usage:
        client = SuggestionRequestClient(channel)
        text = await client.request("今日はどこに行けばいい？", snapshot)
    """

    kind = "suggestion"
    request_event = GET_AI_RESPONSE
    response_event = AI_RESPONSE

    async def request(self, spoken_text: str, weather: Optional[WeatherSnapshot]) -> str:
        """
        Ask the relay for a travel suggestion.

        Raises:
            InvalidArgument: ``spoken_text`` is empty or whitespace
            RequestInFlight: A suggestion request is already outstanding
            ChannelUnavailable: The channel is (or became) disconnected
            ProviderError: The relay reported failure or sent malformed data
        """
        if not isinstance(spoken_text, str) or not spoken_text.strip():
            raise InvalidArgument(msg("error.voice_text_required"))

        logger.info("Requesting travel suggestion")
        payload = await self._exchange({
            "voiceText": spoken_text,
            "weather": weather.to_wire() if weather is not None else None,
        })

        try:
            response = SuggestionResponse.model_validate(payload)
        except ValidationError as e:
            raise ProviderError(msg("error.response_malformed", kind=self.kind)) from e

        if not response.success:
            raise ProviderError(response.error or msg("error.unknown"))
        if response.data is None:
            raise ProviderError(msg("error.response_malformed", kind=self.kind))
        return response.data
