"""Simple message lookup for user-facing and relay error strings.

Error strings are part of the wire contract (the browser client shows them
verbatim), so they are kept here rather than scattered through handlers.
"""

from __future__ import annotations

import random

_MESSAGES: dict[str, str] = {
    "error.coordinates_required": "Latitude and longitude are required",
    "error.coordinates_invalid": "Latitude and longitude must be numbers",
    "error.coordinates_out_of_range": "Coordinates out of range: ({latitude}, {longitude})",
    "error.weather_not_configured": "Weather API key not configured",
    "error.weather_malformed": "Malformed weather data from provider",
    "error.weather_http": "Weather provider returned HTTP {status}",
    "error.voice_text_required": "Voice text is required",
    "error.openai_not_configured": "OpenAI API key not configured",
    "error.ai_malformed": "Malformed completion from AI provider",
    "error.ai_http": "AI provider returned HTTP {status}",
    "error.unsupported_event": "Unsupported event: {event}",
    "error.invalid_frame": "Frame must be a JSON object with an event name",
    "error.not_connected": "Not connected to server",
    "error.request_pending": "A {kind} request is already in progress",
    "error.response_malformed": "Malformed {kind} response from server",
    "error.unknown": "Unknown error",
    "speech.no_speech": "No speech detected. Please try again.",
    "speech.audio_capture": "No microphone found.",
    "speech.not_allowed": "Microphone permission denied.",
    "speech.other": "Error: {code}",
    "speech.unsupported": "Voice recognition not supported. Please use Chrome.",
    "health.running": "TravelBuddy Server is running",
    "health.websocket": "Connect via WebSocket on /ws",
}


_EXAMPLE_QUERIES: tuple[str, ...] = (
    "今日はどこに行けばいい？",
    "天気がいいからピクニックしたい",
    "雨の日に楽しめる場所はある？",
)


def example_query() -> str:
    """Return a sample Japanese query for welcome screens."""
    return random.choice(_EXAMPLE_QUERIES)


def msg(key: str, **kwargs) -> str:
    """Return a message by key, or the key itself if not found."""
    template = _MESSAGES.get(key, key)
    if kwargs:
        return template.format(**kwargs)
    return template
