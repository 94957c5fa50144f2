"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["WEATHER_API_KEY"] = "test-weather-key"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["LOG_LEVEL"] = "WARNING"

from travelbuddy.config import OpenAIConfig, RelayConfig, SessionConfig, WeatherConfig
from travelbuddy.core.llm import ChatResponse, LLMProvider, Message
from travelbuddy.core.weather import WeatherProvider, WeatherSnapshot
from travelbuddy.realtime.channel import LoopbackChannel
from travelbuddy.realtime.relay import RelayServer


TOKYO = (35.6762, 139.6503)


async def wait_for(condition, timeout: float = 1.0) -> None:
    """Poll until ``condition()`` is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class FakeWeatherProvider(WeatherProvider):
    """
    Weather provider returning a fixed snapshot (or raising).

    Set ``gate`` to an asyncio.Event to hold calls until it is set.
    """

    def __init__(self, snapshot: WeatherSnapshot, error: Optional[Exception] = None):
        self.snapshot = snapshot
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Tuple[float, float, Optional[str]]] = []

    async def current(self, latitude, longitude, language=None):
        self.calls.append((latitude, longitude, language))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.snapshot


class FakeLLMProvider(LLMProvider):
    """
    LLM provider answering from a list of outcomes.

    Each outcome is a reply string or an exception to raise; the last one
    repeats once the list runs out.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None):
        self.outcomes = list(outcomes or ["浅草でのんびり散歩はいかがでしょう。"])
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Dict[str, Any]] = []

    async def chat(self, messages: List[Message], temperature=None, max_tokens=None):
        self.calls.append({
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.gate is not None:
            await self.gate.wait()

        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return ChatResponse(content=outcome, model="gpt-3.5-turbo")

    @property
    def last_user_prompt(self) -> str:
        return self.calls[-1]["messages"][-1].content


class RecordingLoopbackChannel(LoopbackChannel):
    """Loopback channel that remembers every event it sent."""

    def __init__(self, relay):
        super().__init__(relay)
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    async def send(self, event, payload):
        accepted = await super().send(event, payload)
        if accepted:
            self.sent.append((event, payload))
        return accepted


@pytest.fixture
def snapshot():
    """Sunny Tokyo reading."""
    return WeatherSnapshot(
        location="東京",
        temperature_celsius=18,
        condition="晴天",
        condition_main="Clear",
        humidity=40,
        icon_id="01d",
    )


@pytest.fixture
def owm_payload():
    """OpenWeatherMap current-weather payload for Tokyo."""
    return {
        "coord": {"lon": 139.6503, "lat": 35.6762},
        "weather": [
            {"id": 800, "main": "Clear", "description": "晴天", "icon": "01d"},
            {"id": 701, "main": "Mist", "description": "霧", "icon": "50d"},
        ],
        "main": {"temp": 17.6, "feels_like": 16.9, "humidity": 40},
        "name": "東京",
    }


@pytest.fixture
def relay_config():
    """Relay config with both credentials present."""
    return RelayConfig(
        weather=WeatherConfig(api_key="test-weather-key", language="ja"),
        openai=OpenAIConfig(api_key="test-openai-key", temperature=0.7, max_tokens=256),
    )


@pytest.fixture
def session_config():
    """Session config with a short geolocation timeout."""
    return SessionConfig(
        geolocation_timeout_s=0.2,
        fallback_latitude=TOKYO[0],
        fallback_longitude=TOKYO[1],
    )


@pytest.fixture
def weather_provider(snapshot):
    return FakeWeatherProvider(snapshot)


@pytest.fixture
def llm_provider():
    return FakeLLMProvider()


@pytest.fixture
def relay(relay_config, weather_provider, llm_provider):
    """Relay wired to fake providers."""
    return RelayServer(relay_config, weather_provider=weather_provider, llm_provider=llm_provider)
