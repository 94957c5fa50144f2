"""
TravelBuddy - Source Package

A voice-driven travel suggestion assistant: Japanese speech in, weather-aware
travel suggestions out.

This package provides:
- A stateless relay between a realtime channel and the weather/AI providers
- A client session state machine driving speech, weather and chat turns
- CLI interface for serving and chatting
"""

__version__ = "1.0.0"

from travelbuddy.config import settings

__all__ = ["settings", "__version__"]
