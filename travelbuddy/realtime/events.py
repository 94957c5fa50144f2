"""
Event System for the Realtime Relay and Session

Two kinds of events live here:

Wire events (channel frames between client and relay):
- get-weather / weather-response
- get-ai-response / ai-response
- error (unsupported or malformed frames)

Session events (in-process, dispatched by the EventBus):
- ConnectionEvent: Channel connected / disconnected
- TranscriptEvent: Speech recognition results (interim/final)
- ListeningEvent: Speech capture started / stopped
- SpeechErrorEvent: Speech capture failed
- WeatherResultEvent: Outcome of a weather request
- SuggestionResultEvent: Outcome of a suggestion request
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from travelbuddy.core.weather import WeatherSnapshot
from travelbuddy.errors import InvalidArgument
from travelbuddy.logger import get_logger
from travelbuddy.messages import msg

logger = get_logger(__name__)


# ============================================================================
# Wire Events
# ============================================================================

CONNECT = "connect"
DISCONNECT = "disconnect"

GET_WEATHER = "get-weather"
WEATHER_RESPONSE = "weather-response"
GET_AI_RESPONSE = "get-ai-response"
AI_RESPONSE = "ai-response"
ERROR = "error"


class WeatherResponse(BaseModel):
    """Payload of a ``weather-response`` frame."""
    success: bool
    data: Optional[WeatherSnapshot] = None
    error: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SuggestionResponse(BaseModel):
    """Payload of an ``ai-response`` frame."""
    success: bool
    data: Optional[str] = None
    error: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def failure(error: str) -> Dict[str, Any]:
    """Generic failure payload."""
    return {"success": False, "error": error}


def encode_frame(event: str, data: Optional[Dict[str, Any]] = None) -> str:
    """Encode an event as a websocket text frame."""
    return json.dumps({"event": event, "data": data or {}}, ensure_ascii=False)


def decode_frame(raw: str) -> Tuple[str, Dict[str, Any]]:
    """
    Decode a websocket text frame.

    Returns:
        Tuple of (event name, payload dict)

    Raises:
        InvalidArgument: If the frame is not a JSON object with an event name
    """
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(msg("error.invalid_frame")) from e

    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        raise InvalidArgument(msg("error.invalid_frame"))

    data = frame.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidArgument(msg("error.invalid_frame"))
    return frame["event"], data


# ============================================================================
# Session Events
# ============================================================================

EventHandler = Callable[[Any], Awaitable[None]]


@dataclass
class Event:
    """Something that happened to a session; handled on the EventBus."""
    timestamp: float = field(default_factory=time.time)
    source: str = ""


@dataclass
class ConnectionEvent(Event):
    """Channel lifecycle change."""
    connected: bool = False
    source: str = "channel"


@dataclass
class TranscriptEvent(Event):
    """Interim or final recognized text."""
    text: str = ""
    is_final: bool = False
    source: str = "speech"


@dataclass
class ListeningEvent(Event):
    """Speech capture started or stopped."""
    listening: bool = False
    source: str = "speech"


@dataclass
class SpeechErrorEvent(Event):
    """Speech capture error; ``kind`` is a SpeechErrorKind."""
    kind: Any = None
    detail: str = ""
    source: str = "speech"


@dataclass
class WeatherResultEvent(Event):
    """Outcome of a weather request."""
    snapshot: Optional[WeatherSnapshot] = None
    error: str = ""
    source: str = "weather_client"

    @property
    def success(self) -> bool:
        return self.snapshot is not None


@dataclass
class SuggestionResultEvent(Event):
    """Outcome of a suggestion request."""
    text: str = ""
    error: str = ""
    source: str = "suggestion_client"

    @property
    def success(self) -> bool:
        return not self.error


# ============================================================================
# Event Bus
# ============================================================================

class EventBus:
    """
    Serializes session events.

    ``publish`` only enqueues; ``run`` hands events to their handlers one at
    a time in the order they were published. A handler therefore never
    observes session state mid-update from another handler. Request tasks
    running beside the bus report back by publishing a result event.
    """

    _STOP = object()

    def __init__(self):
        self._routes: Dict[type, List[EventHandler]] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._published = 0

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        """Route events of ``event_type`` (and subclasses) to ``handler``."""
        handlers = self._routes.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    async def publish(self, event: Event) -> None:
        self._published += 1
        self._queue.put_nowait(event)

    async def dispatch(self, event: Event) -> None:
        """Run the handlers for ``event`` now, outside the queue."""
        for event_type, handlers in self._routes.items():
            if not isinstance(event, event_type):
                continue
            for handler in handlers:
                try:
                    await handler(event)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(f"{type(event).__name__} handler {handler!r} failed")

    async def run(self) -> None:
        """Process queued events until ``stop`` is called or the task is cancelled."""
        logger.debug("Event bus running")
        while True:
            event = await self._queue.get()
            try:
                if event is self._STOP:
                    break
                await self.dispatch(event)
            finally:
                self._queue.task_done()
        logger.debug("Event bus stopped")

    def stop(self) -> None:
        """Let ``run`` return once the events ahead of this call are handled."""
        self._queue.put_nowait(self._STOP)

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def published(self) -> int:
        """Events published since the bus was created."""
        return self._published
