"""
Relay Server Module

Stateless per-request forwarder between channel events and the external
weather and AI providers.

Every call to ``RelayServer.handle`` returns exactly one response event,
whatever happens inside: validation failures, missing credentials and
provider errors all become ``{"success": False, "error": ...}``.

Usage:
    relay = RelayServer(RelayConfig.from_settings(settings))
    event, payload = await relay.handle("get-weather", {"latitude": 35.6, "longitude": 139.6})
"""

from numbers import Real
from typing import Any, Dict, Optional, Tuple

from travelbuddy.config import RelayConfig
from travelbuddy.core.llm import LLMProvider, OpenAIChatProvider, build_suggestion_messages
from travelbuddy.core.weather import OpenWeatherMapProvider, WeatherProvider
from travelbuddy.errors import (
    InvalidArgument,
    MisconfiguredService,
    MissingArgument,
    TravelBuddyError,
)
from travelbuddy.logger import get_logger
from travelbuddy.messages import msg
from .events import (
    AI_RESPONSE,
    ERROR,
    GET_AI_RESPONSE,
    GET_WEATHER,
    WEATHER_RESPONSE,
    SuggestionResponse,
    WeatherResponse,
    failure,
)

logger = get_logger(__name__)

RelayResult = Tuple[str, Dict[str, Any]]


def _error_message(error: Exception) -> str:
    if isinstance(error, TravelBuddyError):
        return error.message
    return str(error) or type(error).__name__


class RelayServer:
    """
    Validates requests, calls providers and builds response events.

    Holds only construction-time configuration and provider clients, so a
    single instance can serve every connection concurrently.
    """

    def __init__(
        self,
        config: RelayConfig,
        weather_provider: Optional[WeatherProvider] = None,
        llm_provider: Optional[LLMProvider] = None,
    ):
        self._config = config
        self._weather = weather_provider or OpenWeatherMapProvider(config.weather)
        self._llm = llm_provider or OpenAIChatProvider(config.openai)

    @property
    def config(self) -> RelayConfig:
        return self._config

    async def handle(self, event: str, payload: Dict[str, Any]) -> RelayResult:
        """Route one inbound event to its handler."""
        if event == GET_WEATHER:
            return await self.handle_weather(payload)
        if event == GET_AI_RESPONSE:
            return await self.handle_suggestion(payload)

        logger.warning(f"Unsupported event: {event}")
        return ERROR, failure(msg("error.unsupported_event", event=event))

    # ========================================================================
    # Weather
    # ========================================================================

    async def handle_weather(self, payload: Dict[str, Any]) -> RelayResult:
        logger.info("Weather request received")

        try:
            latitude, longitude = self._coordinates(payload)

            if not self._config.weather.is_configured:
                raise MisconfiguredService(msg("error.weather_not_configured"))

            language = payload.get("lang") or self._config.weather.language
            snapshot = await self._weather.current(latitude, longitude, language=language)

            logger.info(f"Weather data fetched: {snapshot.location}")
            return WEATHER_RESPONSE, WeatherResponse(success=True, data=snapshot).to_wire()

        except TravelBuddyError as e:
            logger.error(f"Weather error: {e.message}")
            return WEATHER_RESPONSE, WeatherResponse(success=False, error=e.message).to_wire()
        except Exception as e:
            logger.exception(f"Unexpected weather error: {e}")
            return WEATHER_RESPONSE, WeatherResponse(success=False, error=_error_message(e)).to_wire()

    @staticmethod
    def _coordinates(payload: Dict[str, Any]) -> Tuple[float, float]:
        latitude = payload.get("latitude")
        longitude = payload.get("longitude")

        if latitude is None or longitude is None:
            raise MissingArgument(msg("error.coordinates_required"))

        for value in (latitude, longitude):
            if isinstance(value, bool) or not isinstance(value, Real):
                raise InvalidArgument(msg("error.coordinates_invalid"))

        return float(latitude), float(longitude)

    # ========================================================================
    # Suggestions
    # ========================================================================

    async def handle_suggestion(self, payload: Dict[str, Any]) -> RelayResult:
        logger.info("AI request received")

        try:
            voice_text = payload.get("voiceText")
            if not isinstance(voice_text, str) or not voice_text.strip():
                raise MissingArgument(msg("error.voice_text_required"))

            if not self._config.openai.is_configured:
                raise MisconfiguredService(msg("error.openai_not_configured"))

            weather = payload.get("weather")
            if not isinstance(weather, dict):
                weather = None

            messages = build_suggestion_messages(voice_text, weather)
            completion = await self._llm.chat(
                messages,
                temperature=self._config.openai.temperature,
                max_tokens=self._config.openai.max_tokens,
            )

            logger.info(f"AI response generated: {completion.total_tokens} tokens")
            return AI_RESPONSE, SuggestionResponse(success=True, data=completion.content).to_wire()

        except TravelBuddyError as e:
            logger.error(f"AI error: {e.message}")
            return AI_RESPONSE, SuggestionResponse(success=False, error=e.message).to_wire()
        except Exception as e:
            logger.exception(f"Unexpected AI error: {e}")
            return AI_RESPONSE, SuggestionResponse(success=False, error=_error_message(e)).to_wire()
