"""
Realtime Relay and Session Module

This package provides the client-server message relay and the
conversational session state machine.

Architecture:
- Events: Wire event names, frame codec, session events and the EventBus
- Channel: Realtime channel contract (websocket and loopback transports)
- Clients: Single-flight weather and suggestion request clients
- Relay: Stateless server-side forwarder to the weather and AI providers
- Speech: Speech capture adapter interface and scripted adapter
- Geolocation: Device position with a fixed fallback
- Memory: Append-only conversation log
- Session: Orchestrator state machine tying it all together

Usage:
    from travelbuddy.realtime import SessionOrchestrator, WebSocketChannel

    session = SessionOrchestrator(WebSocketChannel(url), capability)
    await session.start()
"""

from .events import (
    Event,
    EventBus,
    ConnectionEvent,
    TranscriptEvent,
    ListeningEvent,
    SpeechErrorEvent,
    WeatherResultEvent,
    SuggestionResultEvent,
    WeatherResponse,
    SuggestionResponse,
    GET_WEATHER,
    WEATHER_RESPONSE,
    GET_AI_RESPONSE,
    AI_RESPONSE,
    encode_frame,
    decode_frame,
)
from .channel import RealtimeChannel, WebSocketChannel, LoopbackChannel, ConnectionState
from .clients import WeatherLookupClient, SuggestionRequestClient
from .relay import RelayServer
from .speech import (
    SpeechCaptureAdapter,
    SpeechCapability,
    SpeechErrorKind,
    TranscriptState,
    ScriptedSpeechAdapter,
    ScriptedUtterance,
)
from .geolocation import (
    Coordinates,
    GeolocationProvider,
    StaticGeolocation,
    DeniedGeolocation,
    FALLBACK_COORDINATES,
    resolve_coordinates,
)
from .memory import ConversationLog, ConversationTurn, Role
from .session import SessionOrchestrator, SessionView, ChatFlowState, WeatherFlowState

__all__ = [
    # Events
    "Event",
    "EventBus",
    "ConnectionEvent",
    "TranscriptEvent",
    "ListeningEvent",
    "SpeechErrorEvent",
    "WeatherResultEvent",
    "SuggestionResultEvent",
    "WeatherResponse",
    "SuggestionResponse",
    "GET_WEATHER",
    "WEATHER_RESPONSE",
    "GET_AI_RESPONSE",
    "AI_RESPONSE",
    "encode_frame",
    "decode_frame",
    # Channel
    "RealtimeChannel",
    "WebSocketChannel",
    "LoopbackChannel",
    "ConnectionState",
    # Clients
    "WeatherLookupClient",
    "SuggestionRequestClient",
    # Relay
    "RelayServer",
    # Speech
    "SpeechCaptureAdapter",
    "SpeechCapability",
    "SpeechErrorKind",
    "TranscriptState",
    "ScriptedSpeechAdapter",
    "ScriptedUtterance",
    # Geolocation
    "Coordinates",
    "GeolocationProvider",
    "StaticGeolocation",
    "DeniedGeolocation",
    "FALLBACK_COORDINATES",
    "resolve_coordinates",
    # Memory
    "ConversationLog",
    "ConversationTurn",
    "Role",
    # Session
    "SessionOrchestrator",
    "SessionView",
    "ChatFlowState",
    "WeatherFlowState",
]
