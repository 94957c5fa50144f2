"""
TravelBuddy configuration.

Every setting comes from the environment (a local ``.env`` is loaded first,
real environment variables win) and has a default that works for local
development against ``ws://localhost:3001/ws``.

Usage:
    from travelbuddy.config import settings
    print(settings.weather.language)

Missing provider credentials are never fatal here: the relay reports them
per request so the server stays partially functional.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def get_env(key: str, default: str = "") -> str:
    """Read ``key`` from the environment, falling back to ``default``."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int) -> int:
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    """Numeric setting; a malformed value raises ValueError at startup."""
    return float(get_env(key, str(default)))


def get_env_list(key: str, default: str) -> List[str]:
    """Comma separated setting, blanks dropped."""
    return [item.strip() for item in get_env(key, default).split(",") if item.strip()]


@dataclass
class WeatherConfig:
    """
    OpenWeatherMap current-weather configuration.

    Attributes:
        api_key: OpenWeatherMap API key
        url: Current weather endpoint
        language: Language for condition descriptions
        units: Unit system requested from the provider
        timeout_s: Request timeout in seconds
    """
    api_key: str = field(default_factory=lambda: get_env("WEATHER_API_KEY"))
    url: str = field(default_factory=lambda: get_env(
        "WEATHER_API_URL", "https://api.openweathermap.org/data/2.5/weather"
    ))
    language: str = field(default_factory=lambda: get_env("WEATHER_LANGUAGE", "ja"))
    units: str = field(default_factory=lambda: get_env("WEATHER_UNITS", "metric"))
    timeout_s: float = field(default_factory=lambda: get_env_float("WEATHER_TIMEOUT_S", 10.0))

    @property
    def is_configured(self) -> bool:
        """True when an API key is set."""
        return bool(self.api_key)


@dataclass
class OpenAIConfig:
    """
    OpenAI chat completion configuration.

    Attributes:
        api_key: OpenAI API key
        base_url: API base URL (no trailing /chat/completions)
        model: Chat model name
        temperature: Sampling temperature
        max_tokens: Maximum tokens in a suggestion
        timeout_s: Request timeout in seconds
    """
    api_key: str = field(default_factory=lambda: get_env("OPENAI_API_KEY"))
    base_url: str = field(default_factory=lambda: get_env("OPENAI_BASE_URL", "https://api.openai.com/v1"))
    model: str = field(default_factory=lambda: get_env("OPENAI_MODEL", "gpt-3.5-turbo"))
    temperature: float = field(default_factory=lambda: get_env_float("LLM_TEMPERATURE", 0.7))
    max_tokens: int = field(default_factory=lambda: get_env_int("LLM_MAX_TOKENS", 256))
    timeout_s: float = field(default_factory=lambda: get_env_float("OPENAI_TIMEOUT_S", 30.0))

    @property
    def is_configured(self) -> bool:
        """True when an API key is set."""
        return bool(self.api_key)

    @property
    def chat_url(self) -> str:
        """Chat completions endpoint under ``base_url``."""
        return f"{self.base_url.rstrip('/')}/chat/completions"


@dataclass
class ServerConfig:
    """
    Relay server configuration.

    Attributes:
        host: Interface to bind
        port: Network port
        cors_origins: Allowed CORS origins
    """
    host: str = field(default_factory=lambda: get_env("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: get_env_int("PORT", 3001))
    cors_origins: List[str] = field(default_factory=lambda: get_env_list("CORS_ORIGINS", "*"))


@dataclass
class SessionConfig:
    """
    Client session configuration.

    Attributes:
        server_url: Websocket URL of the relay
        geolocation_timeout_s: How long to wait for a device position
        fallback_latitude: Latitude used when geolocation fails (Tokyo)
        fallback_longitude: Longitude used when geolocation fails (Tokyo)
    """
    server_url: str = field(default_factory=lambda: get_env("TRAVELBUDDY_SERVER_URL", "ws://localhost:3001/ws"))
    geolocation_timeout_s: float = field(default_factory=lambda: get_env_float("GEOLOCATION_TIMEOUT_S", 10.0))
    fallback_latitude: float = field(default_factory=lambda: get_env_float("FALLBACK_LATITUDE", 35.6762))
    fallback_longitude: float = field(default_factory=lambda: get_env_float("FALLBACK_LONGITUDE", 139.6503))


@dataclass
class LoggingConfig:
    """Root log level (LOG_LEVEL) and an optional UTF-8 log file (LOG_FILE)."""
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class Settings:
    """
    All configuration sections, read once at import into `settings`.

    The relay does not read these directly; it is handed a RelayConfig so a
    missing credential can be simulated without touching the environment.
    """
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # development enables uvicorn reload when api_server.py is run directly
    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@dataclass
class RelayConfig:
    """Provider credentials and endpoints handed to the relay at construction."""
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)

    @classmethod
    def from_settings(cls, source: Settings) -> "RelayConfig":
        return cls(weather=source.weather, openai=source.openai)


# Shared instance; import as `from travelbuddy.config import settings`
settings = Settings()
