"""
Realtime Channel Module

A persistent bidirectional connection carrying named events between the
client session and the relay server.

Contract:
- connect() / disconnect() fire ``connect`` / ``disconnect`` to handlers
- send(event, payload) returns False (never raises) when disconnected;
  nothing is queued for later delivery
- inbound events reach handlers in the order they were sent

Implementations:
- WebSocketChannel: aiohttp websocket client talking to ``/ws``
- LoopbackChannel: in-process channel bound directly to a RelayServer
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiohttp

from travelbuddy.errors import InvalidArgument
from travelbuddy.logger import get_logger
from .events import CONNECT, DISCONNECT, decode_frame, encode_frame

logger = get_logger(__name__)

ChannelHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class ConnectionState(Enum):
    """State of a channel connection."""
    DISCONNECTED = auto()
    CONNECTED = auto()


class RealtimeChannel(ABC):
    """
    Abstract base class for realtime channels.

    Subclasses implement the transport; handler registration and lifecycle
    notification live here.
    """

    def __init__(self):
        self._handlers: Dict[str, List[ChannelHandler]] = {}
        self._state = ConnectionState.DISCONNECTED

    def on_event(self, event: str, handler: ChannelHandler) -> None:
        """Register a coroutine handler for an event name."""
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    async def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        """Deliver an event to every handler registered for it."""
        for handler in list(self._handlers.get(event, [])):
            try:
                await handler(payload)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Channel handler error for '{event}': {e}")

    async def _mark_connected(self) -> None:
        if self._state == ConnectionState.CONNECTED:
            return
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to server")
        await self._emit(CONNECT, {})

    async def _mark_disconnected(self) -> None:
        if self._state == ConnectionState.DISCONNECTED:
            return
        self._state = ConnectionState.DISCONNECTED
        logger.info("Disconnected from server")
        await self._emit(DISCONNECT, {})

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection."""
        pass

    @abstractmethod
    async def send(self, event: str, payload: Dict[str, Any]) -> bool:
        """
        Send an event.

        Returns:
            True if the event was handed to the transport, False if the
            channel is disconnected
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection."""
        pass


class WebSocketChannel(RealtimeChannel):
    """
    Websocket channel using aiohttp.

    Frames are JSON text ``{"event": ..., "data": {...}}``. A single reader
    task dispatches inbound frames, which keeps them in arrival order.

    Usage:
        channel = WebSocketChannel("ws://localhost:3001/ws")
        channel.on_event("weather-response", handle_weather)
        await channel.connect()
        await channel.send("get-weather", {"latitude": 35.6, "longitude": 139.6})
    """

    def __init__(self, url: str, connect_timeout_s: float = 10.0):
        super().__init__()
        self._url = url
        self._connect_timeout_s = connect_timeout_s
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader_task: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        if self.is_connected:
            return

        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(connect=self._connect_timeout_s)
        )
        try:
            self._ws = await self._session.ws_connect(self._url, heartbeat=30.0)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            await self._session.close()
            self._session = None
            raise

        self._reader_task = asyncio.create_task(self._read_loop())
        await self._mark_connected()

    async def _read_loop(self) -> None:
        """Dispatch inbound frames until the socket closes."""
        ws = self._ws
        if ws is None:
            return

        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    try:
                        event, payload = decode_frame(message.data)
                    except InvalidArgument as e:
                        logger.warning(f"Dropping frame: {e.message}")
                        continue
                    await self._emit(event, payload)
                elif message.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                    break
                elif message.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"Websocket error: {ws.exception()}")
                    break
        finally:
            await self._mark_disconnected()

    async def send(self, event: str, payload: Dict[str, Any]) -> bool:
        if not self.is_connected or self._ws is None or self._ws.closed:
            logger.warning(f"Not sent (disconnected): {event}")
            return False

        try:
            await self._ws.send_str(encode_frame(event, payload))
        except (aiohttp.ClientError, ConnectionResetError) as e:
            logger.error(f"Send failed for {event}: {e}")
            await self._mark_disconnected()
            return False
        return True

    async def disconnect(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

        if self._reader_task is not None:
            try:
                await asyncio.wait_for(self._reader_task, timeout=2.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._reader_task = None

        if self._session is not None:
            await self._session.close()
            self._session = None

        self._ws = None
        await self._mark_disconnected()


class LoopbackChannel(RealtimeChannel):
    """
    In-process channel bound directly to a relay.

    Requests are handled by one worker in FIFO order, so responses come back
    in the order requests were sent, as they would over a websocket.

    Usage:
        channel = LoopbackChannel(RelayServer(RelayConfig()))
        await channel.connect()
    """

    def __init__(self, relay):
        super().__init__()
        self._relay = relay
        self._queue: "asyncio.Queue[Tuple[str, Dict[str, Any]]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        if self.is_connected:
            return
        self._worker = asyncio.create_task(self._serve())
        await self._mark_connected()

    async def _serve(self) -> None:
        while True:
            event, payload = await self._queue.get()
            try:
                response_event, response_payload = await self._relay.handle(event, payload)
                if self.is_connected:
                    await self._emit(response_event, response_payload)
            finally:
                self._queue.task_done()

    async def send(self, event: str, payload: Dict[str, Any]) -> bool:
        if not self.is_connected:
            logger.warning(f"Not sent (disconnected): {event}")
            return False
        self._queue.put_nowait((event, payload))
        return True

    async def disconnect(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        # Unhandled requests are dropped, as they would be on a closed socket
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        await self._mark_disconnected()
