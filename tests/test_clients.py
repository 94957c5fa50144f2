"""
Tests for the realtime channel and the single-flight request clients.

Uses the loopback channel bound to a relay with fake providers.
"""

import asyncio
import math

import pytest

from travelbuddy.config import OpenAIConfig, RelayConfig, WeatherConfig
from travelbuddy.errors import ChannelUnavailable, InvalidArgument, ProviderError, RequestInFlight
from travelbuddy.realtime.channel import ConnectionState, LoopbackChannel
from travelbuddy.realtime.clients import SuggestionRequestClient, WeatherLookupClient
from travelbuddy.realtime.relay import RelayServer

from tests.conftest import RecordingLoopbackChannel, wait_for


# ============================================================================
# Channel
# ============================================================================

class TestLoopbackChannel:
    """Tests for the channel contract."""

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, relay):
        channel = LoopbackChannel(relay)
        seen = []

        async def on_connect(payload):
            seen.append("connect")

        async def on_disconnect(payload):
            seen.append("disconnect")

        channel.on_event("connect", on_connect)
        channel.on_event("disconnect", on_disconnect)

        assert channel.state == ConnectionState.DISCONNECTED
        await channel.connect()
        assert channel.is_connected
        await channel.disconnect()

        assert seen == ["connect", "disconnect"]
        assert not channel.is_connected

    @pytest.mark.asyncio
    async def test_send_while_disconnected(self, relay):
        channel = RecordingLoopbackChannel(relay)

        assert await channel.send("get-weather", {"latitude": 1, "longitude": 2}) is False
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_responses_in_send_order(self, relay):
        channel = LoopbackChannel(relay)
        received = []

        async def on_response(payload):
            received.append(payload.get("data") or payload.get("error"))

        channel.on_event("ai-response", on_response)
        await channel.connect()

        await channel.send("get-ai-response", {"voiceText": ""})
        await channel.send("get-ai-response", {"voiceText": "こんにちは"})
        await wait_for(lambda: len(received) == 2)

        assert received[0] == "Voice text is required"
        assert received[1] == "浅草でのんびり散歩はいかがでしょう。"
        await channel.disconnect()

    @pytest.mark.asyncio
    async def test_unsupported_event_reports_error(self, relay):
        channel = LoopbackChannel(relay)
        errors = []

        async def on_error(payload):
            errors.append(payload)

        channel.on_event("error", on_error)
        await channel.connect()
        await channel.send("get-fortune", {})
        await wait_for(lambda: errors)

        assert errors == [{"success": False, "error": "Unsupported event: get-fortune"}]
        await channel.disconnect()


# ============================================================================
# Weather client
# ============================================================================

class TestWeatherLookupClient:
    """Tests for get-weather requests."""

    @pytest.mark.asyncio
    async def test_request(self, relay, snapshot):
        channel = RecordingLoopbackChannel(relay)
        client = WeatherLookupClient(channel)
        await channel.connect()

        result = await client.request(35.6762, 139.6503)

        assert result == snapshot
        assert channel.sent == [("get-weather", {"latitude": 35.6762, "longitude": 139.6503})]
        assert not client.pending
        await channel.disconnect()

    @pytest.mark.asyncio
    async def test_invalid_coordinates_are_not_sent(self, relay):
        channel = RecordingLoopbackChannel(relay)
        client = WeatherLookupClient(channel)
        await channel.connect()

        for latitude, longitude in ((91, 0), (0, -180.5), (math.nan, 0), (0, math.inf), (True, 0), ("35", 0)):
            with pytest.raises(InvalidArgument):
                await client.request(latitude, longitude)

        assert channel.sent == []
        await channel.disconnect()

    @pytest.mark.asyncio
    async def test_disconnected(self, relay):
        client = WeatherLookupClient(LoopbackChannel(relay))

        with pytest.raises(ChannelUnavailable, match="Not connected"):
            await client.request(35.6, 139.6)
        assert not client.pending

    @pytest.mark.asyncio
    async def test_relay_failure(self, weather_provider, llm_provider):
        relay = RelayServer(
            RelayConfig(weather=WeatherConfig(api_key=""), openai=OpenAIConfig(api_key="k")),
            weather_provider=weather_provider,
            llm_provider=llm_provider,
        )
        channel = LoopbackChannel(relay)
        client = WeatherLookupClient(channel)
        await channel.connect()

        with pytest.raises(ProviderError, match="Weather API key not configured"):
            await client.request(35.6, 139.6)
        await channel.disconnect()

    @pytest.mark.asyncio
    async def test_single_flight(self, relay, weather_provider):
        weather_provider.gate = asyncio.Event()
        channel = RecordingLoopbackChannel(relay)
        client = WeatherLookupClient(channel)
        await channel.connect()

        first = asyncio.create_task(client.request(35.6, 139.6))
        await wait_for(lambda: client.pending)

        with pytest.raises(RequestInFlight):
            await client.request(34.7, 135.5)

        weather_provider.gate.set()
        assert (await first).location == "東京"
        assert len(channel.sent) == 1
        await channel.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending(self, relay, weather_provider):
        weather_provider.gate = asyncio.Event()
        channel = LoopbackChannel(relay)
        client = WeatherLookupClient(channel)
        await channel.connect()

        pending = asyncio.create_task(client.request(35.6, 139.6))
        await wait_for(lambda: weather_provider.calls)
        await channel.disconnect()

        with pytest.raises(ChannelUnavailable):
            await pending
        assert not client.pending

    @pytest.mark.asyncio
    async def test_unsolicited_response_ignored(self, relay):
        channel = LoopbackChannel(relay)
        client = WeatherLookupClient(channel)
        await channel.connect()

        # Nobody is waiting: must not raise
        await client._on_response({"success": True})
        assert not client.pending
        await channel.disconnect()


# ============================================================================
# Suggestion client
# ============================================================================

class TestSuggestionRequestClient:
    """Tests for get-ai-response requests."""

    @pytest.mark.asyncio
    async def test_request_with_weather(self, relay, snapshot, llm_provider):
        channel = RecordingLoopbackChannel(relay)
        client = SuggestionRequestClient(channel)
        await channel.connect()

        reply = await client.request("今日はどこに行けばいい？", snapshot)

        assert reply == "浅草でのんびり散歩はいかがでしょう。"
        assert channel.sent == [(
            "get-ai-response",
            {"voiceText": "今日はどこに行けばいい？", "weather": snapshot.to_wire()},
        )]
        assert "Location: 東京" in llm_provider.last_user_prompt
        await channel.disconnect()

    @pytest.mark.asyncio
    async def test_request_without_weather(self, relay):
        channel = RecordingLoopbackChannel(relay)
        client = SuggestionRequestClient(channel)
        await channel.connect()

        await client.request("雨の日に楽しめる場所はある？", None)

        assert channel.sent[0][1]["weather"] is None
        await channel.disconnect()

    @pytest.mark.asyncio
    async def test_empty_text(self, relay):
        channel = RecordingLoopbackChannel(relay)
        client = SuggestionRequestClient(channel)
        await channel.connect()

        for text in ("", "   "):
            with pytest.raises(InvalidArgument, match="Voice text is required"):
                await client.request(text, None)

        assert channel.sent == []
        await channel.disconnect()

    @pytest.mark.asyncio
    async def test_clients_share_a_channel(self, relay, snapshot):
        channel = LoopbackChannel(relay)
        weather_client = WeatherLookupClient(channel)
        suggestion_client = SuggestionRequestClient(channel)
        await channel.connect()

        weather, reply = await asyncio.gather(
            weather_client.request(35.6, 139.6),
            suggestion_client.request("こんにちは", None),
        )

        assert weather == snapshot
        assert reply == "浅草でのんびり散歩はいかがでしょう。"
        await channel.disconnect()
