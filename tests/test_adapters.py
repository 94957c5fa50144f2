"""
Tests for the speech capture adapter, geolocation and the conversation log.
"""

import asyncio
from typing import List, Tuple

import pytest

from travelbuddy.realtime.geolocation import (
    FALLBACK_COORDINATES,
    Coordinates,
    DeniedGeolocation,
    GeolocationProvider,
    StaticGeolocation,
    resolve_coordinates,
)
from travelbuddy.realtime.memory import ConversationLog, Role
from travelbuddy.realtime.speech import (
    ScriptedSpeechAdapter,
    ScriptedUtterance,
    SpeechCapability,
    SpeechErrorKind,
)


class RecordingListener:
    """Speech listener that records every notification."""

    def __init__(self):
        self.events: List[Tuple[str, object]] = []

    async def on_interim(self, text):
        self.events.append(("interim", text))

    async def on_final(self, text):
        self.events.append(("final", text))

    async def on_error(self, kind, detail):
        self.events.append(("error", kind))

    async def on_listening_changed(self, listening):
        self.events.append(("listening", listening))


# ============================================================================
# Speech
# ============================================================================

class TestSpeechErrorKind:
    """Tests for platform error mapping."""

    def test_platform_codes(self):
        assert SpeechErrorKind.from_platform_code("no-speech") == SpeechErrorKind.NO_SPEECH_DETECTED
        assert SpeechErrorKind.from_platform_code("audio-capture") == SpeechErrorKind.MICROPHONE_UNAVAILABLE
        assert SpeechErrorKind.from_platform_code("not-allowed") == SpeechErrorKind.PERMISSION_DENIED
        assert SpeechErrorKind.from_platform_code("network") == SpeechErrorKind.OTHER

    def test_messages(self):
        assert SpeechErrorKind.NO_SPEECH_DETECTED.describe() == "No speech detected. Please try again."
        assert SpeechErrorKind.MICROPHONE_UNAVAILABLE.describe() == "No microphone found."
        assert SpeechErrorKind.PERMISSION_DENIED.describe() == "Microphone permission denied."
        assert SpeechErrorKind.OTHER.describe("network") == "Error: network"


class TestScriptedSpeechAdapter:
    """Tests for the scripted adapter's event order."""

    @pytest.mark.asyncio
    async def test_utterance_order(self):
        adapter = ScriptedSpeechAdapter([ScriptedUtterance(interims=["今日は"], final="今日はどこに行けばいい？")])
        listener = RecordingListener()
        adapter.attach(listener)

        await adapter.start()

        assert listener.events == [
            ("listening", True),
            ("interim", "今日は"),
            ("final", "今日はどこに行けばいい？"),
            ("listening", False),
        ]
        assert adapter.transcript.text == "今日はどこに行けばいい？"
        assert adapter.transcript.is_final
        assert not adapter.is_listening

    @pytest.mark.asyncio
    async def test_error_utterance(self):
        adapter = ScriptedSpeechAdapter([ScriptedUtterance(error="audio-capture")])
        listener = RecordingListener()
        adapter.attach(listener)

        await adapter.start()

        assert ("error", SpeechErrorKind.MICROPHONE_UNAVAILABLE) in listener.events
        assert listener.events[-1] == ("listening", False)

    @pytest.mark.asyncio
    async def test_empty_script_means_no_speech(self):
        adapter = ScriptedSpeechAdapter()
        listener = RecordingListener()
        adapter.attach(listener)

        await adapter.start()

        assert ("error", SpeechErrorKind.NO_SPEECH_DETECTED) in listener.events
        assert adapter.start_count == 1

    @pytest.mark.asyncio
    async def test_stop_discards_interim(self):
        adapter = ScriptedSpeechAdapter([ScriptedUtterance(interims=["えっと"], final="無視")], hold_open=True)
        adapter.attach(RecordingListener())

        await adapter.start()
        assert adapter.is_listening
        assert adapter.transcript.text == "えっと"

        await adapter.stop()
        assert not adapter.is_listening
        assert adapter.transcript.text == ""

    @pytest.mark.asyncio
    async def test_clear_transcript(self):
        adapter = ScriptedSpeechAdapter([ScriptedUtterance(final="こんにちは")])
        await adapter.start()

        adapter.clear_transcript()
        assert adapter.transcript.text == ""
        assert not adapter.transcript.is_final

    def test_fixed_language(self):
        adapter = ScriptedSpeechAdapter()
        assert adapter.language == "ja-JP"
        assert adapter.continuous is False

    def test_capability(self):
        assert SpeechCapability.available(ScriptedSpeechAdapter()).is_available
        unavailable = SpeechCapability.unavailable()
        assert not unavailable.is_available
        assert unavailable.reason == "Voice recognition not supported. Please use Chrome."


# ============================================================================
# Geolocation
# ============================================================================

class HangingGeolocation(GeolocationProvider):
    async def current_position(self) -> Coordinates:
        await asyncio.sleep(60)
        return Coordinates(0.0, 0.0)


class CrashingGeolocation(GeolocationProvider):
    async def current_position(self) -> Coordinates:
        raise RuntimeError("position backend gone")


class TestGeolocation:
    """Tests for coordinate resolution with fallback."""

    @pytest.mark.asyncio
    async def test_static(self):
        coordinates = await resolve_coordinates(StaticGeolocation(43.0618, 141.3545))
        assert coordinates == Coordinates(43.0618, 141.3545)

    @pytest.mark.asyncio
    async def test_no_provider(self):
        assert await resolve_coordinates(None) == FALLBACK_COORDINATES

    @pytest.mark.asyncio
    async def test_denied(self):
        assert await resolve_coordinates(DeniedGeolocation()) == Coordinates(35.6762, 139.6503)

    @pytest.mark.asyncio
    async def test_timeout(self):
        coordinates = await resolve_coordinates(HangingGeolocation(), timeout_s=0.05)
        assert coordinates == FALLBACK_COORDINATES

    @pytest.mark.asyncio
    async def test_unexpected_error(self):
        assert await resolve_coordinates(CrashingGeolocation()) == FALLBACK_COORDINATES

    @pytest.mark.asyncio
    async def test_custom_fallback(self):
        osaka = Coordinates(34.6937, 135.5023)
        assert await resolve_coordinates(DeniedGeolocation(), fallback=osaka) == osaka


# ============================================================================
# Conversation log
# ============================================================================

class TestConversationLog:
    """Tests for the append-only log."""

    def test_append_and_count(self):
        log = ConversationLog(clock=lambda: 1000.0)
        log.append(Role.USER, "今日はどこに行けばいい？")
        log.append(Role.ASSISTANT, "浅草はいかがでしょう。")

        assert len(log) == 2
        assert log.count(Role.USER) == 1
        assert log.count() == 2
        assert log.last.role == Role.ASSISTANT

    def test_clock_going_backwards(self):
        ticks = iter([100.0, 90.0, 120.0])
        log = ConversationLog(clock=lambda: next(ticks))

        for text in ("a", "b", "c"):
            log.append(Role.USER, text)

        assert [turn.occurred_at for turn in log.turns] == [100.0, 100.0, 120.0]

    def test_turns_are_read_only(self):
        log = ConversationLog()
        log.append(Role.USER, "x")

        turns = log.turns
        assert isinstance(turns, tuple)
        with pytest.raises(Exception):
            turns[0].text = "y"

    def test_display_time(self):
        log = ConversationLog()
        turn = log.append(Role.USER, "x")
        assert len(turn.display_time) == 5
        assert turn.display_time[2] == ":"

    def test_empty(self):
        log = ConversationLog()
        assert log.last is None
        assert log.turns == ()
