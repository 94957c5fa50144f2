"""
Core Module Package

This package contains the provider abstractions and implementations for:
- Weather: Current weather lookup by coordinates
- LLM: Chat completions for travel suggestions
"""

from travelbuddy.core.weather import WeatherProvider, OpenWeatherMapProvider, WeatherSnapshot
from travelbuddy.core.llm import LLMProvider, OpenAIChatProvider, build_suggestion_messages

__all__ = [
    "WeatherProvider",
    "OpenWeatherMapProvider",
    "WeatherSnapshot",
    "LLMProvider",
    "OpenAIChatProvider",
    "build_suggestion_messages",
]
