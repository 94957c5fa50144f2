"""
Session Orchestrator Module

Client-side state machine tying speech capture, the realtime channel and the
relay clients together.

Two independent sub-flows:
- Weather: IDLE -> PENDING -> READY, run once per session after connecting
- Chat: LISTEN_IDLE -> LISTENING -> TRANSCRIPT_FINAL -> SUGGESTION_PENDING
  -> LISTEN_IDLE, repeated per turn

All state changes happen in EventBus handlers, one event at a time in
arrival order. Requests run as tasks and report back through the bus, so a
slow provider never holds up speech or connection events.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Coroutine, Dict, Optional, Set, Tuple

from travelbuddy.config import SessionConfig, settings
from travelbuddy.core.weather import WeatherSnapshot
from travelbuddy.errors import SpeechCaptureError, TravelBuddyError
from travelbuddy.logger import get_logger

from .channel import ConnectionState, RealtimeChannel
from .clients import SuggestionRequestClient, WeatherLookupClient
from .events import (
    CONNECT,
    DISCONNECT,
    ConnectionEvent,
    EventBus,
    ListeningEvent,
    SpeechErrorEvent,
    SuggestionResultEvent,
    TranscriptEvent,
    WeatherResultEvent,
)
from .geolocation import Coordinates, GeolocationProvider, resolve_coordinates
from .memory import ConversationLog, ConversationTurn, Role
from .speech import SpeechCapability, SpeechErrorKind

logger = get_logger(__name__)


class WeatherFlowState(Enum):
    """State of the weather sub-flow."""
    IDLE = auto()
    PENDING = auto()
    READY = auto()


class ChatFlowState(Enum):
    """State of the chat sub-flow."""
    LISTEN_IDLE = auto()
    LISTENING = auto()
    TRANSCRIPT_FINAL = auto()
    SUGGESTION_PENDING = auto()


@dataclass(frozen=True)
class SessionView:
    """Everything a UI needs to draw the session."""
    connected: bool
    weather: Optional[WeatherSnapshot]
    weather_loading: bool
    weather_error: Optional[str]
    listening: bool
    transcript: str
    suggestion_loading: bool
    chat_error: Optional[str]
    speech_error: Optional[str]
    turns: Tuple[ConversationTurn, ...]


class SessionOrchestrator:
    """
    Conversational session for one client instance.

    Usage:
        channel = WebSocketChannel(settings.session.server_url)
        session = SessionOrchestrator(channel, SpeechCapability.available(adapter))
        await session.start()
        await session.start_listening()
        await session.settle()
        print(session.view().turns)
        await session.stop()
    """

    def __init__(
        self,
        channel: RealtimeChannel,
        speech: SpeechCapability,
        geolocation: Optional[GeolocationProvider] = None,
        config: Optional[SessionConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._channel = channel
        self._speech = speech
        self._geolocation = geolocation
        self._config = config or settings.session

        self._event_bus = EventBus()
        self._log = ConversationLog(clock)
        self._weather_client = WeatherLookupClient(channel)
        self._suggestion_client = SuggestionRequestClient(channel)

        # Connection
        self._connection = ConnectionState.DISCONNECTED

        # Weather sub-flow
        self._weather_state = WeatherFlowState.IDLE
        self._weather: Optional[WeatherSnapshot] = None
        self._weather_error: Optional[str] = None
        self._weather_attempted = False

        # Chat sub-flow
        self._chat_state = ChatFlowState.LISTEN_IDLE
        self._interim_text = ""
        self._final_text = ""
        self._final_consumed = False
        self._last_consumed: Optional[str] = None
        self._chat_error: Optional[str] = None
        self._speech_failure: Optional[SpeechCaptureError] = None

        # Tasks
        self._bus_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._running = False

        channel.on_event(CONNECT, self._on_channel_connect)
        channel.on_event(DISCONNECT, self._on_channel_disconnect)
        if speech.adapter is not None:
            speech.adapter.attach(self)

        self._event_bus.subscribe(ConnectionEvent, self._handle_connection)
        self._event_bus.subscribe(WeatherResultEvent, self._handle_weather_result)
        self._event_bus.subscribe(TranscriptEvent, self._handle_transcript)
        self._event_bus.subscribe(ListeningEvent, self._handle_listening)
        self._event_bus.subscribe(SpeechErrorEvent, self._handle_speech_error)
        self._event_bus.subscribe(SuggestionResultEvent, self._handle_suggestion_result)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self, connect: bool = True) -> None:
        """Start event processing and (optionally) connect the channel."""
        if self._running:
            return

        self._running = True
        self._bus_task = asyncio.create_task(self._event_bus.run())

        if self._channel.is_connected:
            await self._event_bus.publish(ConnectionEvent(connected=True))
        elif connect:
            await self._channel.connect()

        logger.info("Session started")

    async def stop(self) -> None:
        """Stop listening, close the channel and stop event processing."""
        if not self._running:
            return

        self._running = False
        await self.stop_listening()
        await self._channel.disconnect()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._bus_task:
            self._event_bus.stop()
            try:
                await asyncio.wait_for(self._bus_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                logger.warning("Event bus did not stop cleanly")
            self._bus_task = None

        logger.info("Session stopped")

    async def settle(self, timeout: float = 5.0) -> None:
        """Wait until no request task is running and no event is queued."""

        async def _quiesce() -> None:
            while True:
                pending = [task for task in self._tasks if not task.done()]
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
                    continue
                await self._event_bus.join()
                if all(task.done() for task in self._tasks) and self._event_bus.pending == 0:
                    return

        await asyncio.wait_for(_quiesce(), timeout=timeout)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Session task failed: {task.exception()!r}")

    # ========================================================================
    # User controls
    # ========================================================================

    async def start_listening(self) -> bool:
        """
        Begin a voice turn.

        Returns:
            False if speech is unavailable, the channel is down, or a turn is
            already in progress
        """
        if not self._speech.is_available:
            self._speech_failure = SpeechCaptureError(SpeechErrorKind.OTHER, self._speech.reason)
            logger.warning(f"Speech unavailable: {self._speech.reason}")
            return False
        if not self._channel.is_connected:
            logger.warning("Cannot listen while disconnected")
            return False
        if self._chat_state != ChatFlowState.LISTEN_IDLE:
            logger.debug(f"Ignoring start while {self._chat_state.name}")
            return False

        self._chat_state = ChatFlowState.LISTENING
        self._interim_text = ""
        self._final_text = ""
        self._speech_failure = None

        await self._speech.adapter.start()
        return True

    async def stop_listening(self) -> None:
        """Stop the current voice turn; interim text is discarded."""
        adapter = self._speech.adapter
        if adapter is not None and self._chat_state == ChatFlowState.LISTENING:
            await adapter.stop()

    async def toggle_listening(self) -> bool:
        """Start or stop listening, like a push-to-talk button."""
        if self._chat_state == ChatFlowState.LISTENING:
            await self.stop_listening()
            return False
        return await self.start_listening()

    # ========================================================================
    # Channel and speech callbacks (publish onto the bus)
    # ========================================================================

    async def _on_channel_connect(self, _payload: Dict[str, Any]) -> None:
        await self._event_bus.publish(ConnectionEvent(connected=True))

    async def _on_channel_disconnect(self, _payload: Dict[str, Any]) -> None:
        await self._event_bus.publish(ConnectionEvent(connected=False))

    async def on_interim(self, text: str) -> None:
        await self._event_bus.publish(TranscriptEvent(text=text, is_final=False))

    async def on_final(self, text: str) -> None:
        await self._event_bus.publish(TranscriptEvent(text=text, is_final=True))

    async def on_error(self, kind: SpeechErrorKind, detail: str) -> None:
        await self._event_bus.publish(SpeechErrorEvent(kind=kind, detail=detail))

    async def on_listening_changed(self, listening: bool) -> None:
        await self._event_bus.publish(ListeningEvent(listening=listening))

    # ========================================================================
    # Weather sub-flow
    # ========================================================================

    async def _handle_connection(self, event: ConnectionEvent) -> None:
        if not event.connected:
            self._connection = ConnectionState.DISCONNECTED
            return

        self._connection = ConnectionState.CONNECTED
        if self._weather_attempted:
            return

        self._weather_attempted = True
        self._weather_state = WeatherFlowState.PENDING
        self._spawn(self._fetch_weather())

    async def _fetch_weather(self) -> None:
        fallback = Coordinates(self._config.fallback_latitude, self._config.fallback_longitude)
        coordinates = await resolve_coordinates(
            self._geolocation,
            timeout_s=self._config.geolocation_timeout_s,
            fallback=fallback,
        )

        try:
            snapshot = await self._weather_client.request(coordinates.latitude, coordinates.longitude)
        except TravelBuddyError as e:
            await self._event_bus.publish(WeatherResultEvent(error=e.message))
        else:
            await self._event_bus.publish(WeatherResultEvent(snapshot=snapshot))

    async def _handle_weather_result(self, event: WeatherResultEvent) -> None:
        if event.success:
            self._weather = event.snapshot
            self._weather_error = None
            self._weather_state = WeatherFlowState.READY
            logger.info(f"Weather ready: {event.snapshot.location} {event.snapshot.temperature_celsius}°C")
        else:
            # Keep whatever snapshot we already had
            self._weather_error = event.error
            self._weather_state = WeatherFlowState.READY if self._weather else WeatherFlowState.IDLE
            logger.warning(f"Weather unavailable: {event.error}")

    # ========================================================================
    # Chat sub-flow
    # ========================================================================

    async def _handle_transcript(self, event: TranscriptEvent) -> None:
        if not event.is_final:
            if self._chat_state == ChatFlowState.LISTENING:
                self._interim_text = event.text
            return

        if event.text == self._last_consumed:
            logger.debug("Ignoring duplicate final transcript")
            return

        self._final_text = event.text
        self._final_consumed = False
        self._interim_text = ""

        # A final result may arrive after the adapter already reported stop
        await self._consume_final()

    async def _handle_listening(self, event: ListeningEvent) -> None:
        if event.listening or self._chat_state != ChatFlowState.LISTENING:
            return

        self._chat_state = ChatFlowState.LISTEN_IDLE
        self._interim_text = ""
        await self._consume_final()

    async def _handle_speech_error(self, event: SpeechErrorEvent) -> None:
        kind = event.kind if isinstance(event.kind, SpeechErrorKind) else SpeechErrorKind.OTHER
        self._speech_failure = SpeechCaptureError(kind, kind.describe(event.detail))
        logger.warning(f"Speech capture failed: {self._speech_failure.message}")
        self._interim_text = ""
        if self._chat_state == ChatFlowState.LISTENING:
            self._chat_state = ChatFlowState.LISTEN_IDLE

    async def _consume_final(self) -> None:
        """Turn a buffered final transcript into a user turn and a request."""
        if self._chat_state != ChatFlowState.LISTEN_IDLE:
            return

        text = self._final_text
        if self._final_consumed or not text.strip() or text == self._last_consumed:
            return

        self._chat_state = ChatFlowState.TRANSCRIPT_FINAL
        self._log.append(Role.USER, text)
        self._last_consumed = text
        self._final_consumed = True
        self._final_text = ""
        if self._speech.adapter is not None:
            self._speech.adapter.clear_transcript()

        self._chat_state = ChatFlowState.SUGGESTION_PENDING
        self._chat_error = None
        self._spawn(self._request_suggestion(text, self._weather))

    async def _request_suggestion(self, text: str, weather: Optional[WeatherSnapshot]) -> None:
        try:
            reply = await self._suggestion_client.request(text, weather)
        except TravelBuddyError as e:
            await self._event_bus.publish(SuggestionResultEvent(error=e.message))
        else:
            await self._event_bus.publish(SuggestionResultEvent(text=reply))

    async def _handle_suggestion_result(self, event: SuggestionResultEvent) -> None:
        if event.success:
            self._log.append(Role.ASSISTANT, event.text)
        else:
            self._chat_error = event.error
            logger.warning(f"Suggestion failed: {event.error}")
        self._chat_state = ChatFlowState.LISTEN_IDLE

    # ========================================================================
    # State
    # ========================================================================

    def view(self) -> SessionView:
        """Snapshot of the display state."""
        return SessionView(
            connected=self._connection == ConnectionState.CONNECTED,
            weather=self._weather,
            weather_loading=self._weather_state == WeatherFlowState.PENDING,
            weather_error=self._weather_error,
            listening=self._chat_state == ChatFlowState.LISTENING,
            transcript=self._final_text or self._interim_text,
            suggestion_loading=self._chat_state == ChatFlowState.SUGGESTION_PENDING,
            chat_error=self._chat_error,
            speech_error=self.speech_error,
            turns=self._log.turns,
        )

    @property
    def chat_state(self) -> ChatFlowState:
        return self._chat_state

    @property
    def weather_state(self) -> WeatherFlowState:
        return self._weather_state

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection

    @property
    def weather(self) -> Optional[WeatherSnapshot]:
        return self._weather

    @property
    def weather_error(self) -> Optional[str]:
        return self._weather_error

    @property
    def chat_error(self) -> Optional[str]:
        return self._chat_error

    @property
    def speech_error(self) -> Optional[str]:
        return self._speech_failure.message if self._speech_failure else None

    @property
    def speech_failure(self) -> Optional[SpeechCaptureError]:
        """The last speech capture error, cleared when a new turn starts."""
        return self._speech_failure

    @property
    def speech_error_kind(self) -> Optional[SpeechErrorKind]:
        return self._speech_failure.kind if self._speech_failure else None

    @property
    def log(self) -> ConversationLog:
        """Conversation history."""
        return self._log

    @property
    def stats(self) -> Dict[str, Any]:
        """Get session statistics."""
        return {
            "chat_state": self._chat_state.name,
            "weather_state": self._weather_state.name,
            "connected": self._connection == ConnectionState.CONNECTED,
            "user_turns": self._log.count(Role.USER),
            "assistant_turns": self._log.count(Role.ASSISTANT),
            "events": self._event_bus.published,
        }
