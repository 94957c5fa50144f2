"""
FastAPI Relay Server

Exposes the relay over a websocket for the browser client, plus health
endpoints.

Websocket protocol (``/ws``), JSON text frames ``{"event": ..., "data": {...}}``:
    client -> server: get-weather, get-ai-response
    server -> client: weather-response, ai-response, error
"""

import asyncio
import os
import sys
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Set

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketDisconnect

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from travelbuddy.config import RelayConfig, settings
from travelbuddy.errors import InvalidArgument
from travelbuddy.logger import connection_logger, get_logger, init_logging
from travelbuddy.messages import msg
from travelbuddy.realtime.events import ERROR, decode_frame, encode_frame, failure
from travelbuddy.realtime.relay import RelayServer

logger = get_logger(__name__)


def log_banner(config: RelayConfig) -> None:
    """Log the startup banner with credential status."""
    logger.info("=" * 45)
    logger.info("TravelBuddy Server")
    logger.info("=" * 45)
    logger.info(f"Server running on http://localhost:{settings.server.port}")
    logger.info("WebSocket ready for connections on /ws")
    logger.info(f"Weather API Key: {'Configured' if config.weather.is_configured else 'Missing'}")
    logger.info(f"OpenAI API Key: {'Configured' if config.openai.is_configured else 'Missing'}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the relay on startup unless one was injected."""
    init_logging()

    if getattr(app.state, "relay", None) is None:
        app.state.relay = RelayServer(RelayConfig.from_settings(settings))
    log_banner(app.state.relay.config)

    yield


# Create FastAPI app
app = FastAPI(
    title="TravelBuddy Relay",
    description="Realtime relay between the voice client and weather/AI providers",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def get_relay(websocket: WebSocket) -> RelayServer:
    """Get the relay instance."""
    return websocket.app.state.relay


@app.get("/")
async def root():
    """Health check endpoint (original client contract)."""
    return {
        "status": "ok",
        "message": msg("health.running"),
        "websocket": msg("health.websocket"),
    }


@app.get("/api/health")
async def health_check():
    """Health check with credential status."""
    config: RelayConfig = app.state.relay.config
    return {
        "status": "healthy",
        "weather_configured": config.weather.is_configured,
        "openai_configured": config.openai.is_configured,
    }


@app.websocket("/ws")
async def relay_socket(websocket: WebSocket):
    """Relay channel events for one client connection."""
    await websocket.accept()
    relay = get_relay(websocket)
    client_log = connection_logger(logger, uuid.uuid4().hex[:8])
    client_log.info("Connected")

    send_lock = asyncio.Lock()
    tasks: Set[asyncio.Task] = set()

    async def send(event: str, payload: Dict[str, Any]) -> None:
        async with send_lock:
            try:
                await websocket.send_text(encode_frame(event, payload))
            except (WebSocketDisconnect, RuntimeError) as e:
                client_log.debug(f"Dropping {event}: {e}")

    async def respond(event: str, payload: Dict[str, Any]) -> None:
        response_event, response_payload = await relay.handle(event, payload)
        await send(response_event, response_payload)

    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            break

        raw = message.get("text")
        if raw is None:
            client_log.warning("Rejected binary frame")
            await send(ERROR, failure(msg("error.invalid_frame")))
            continue

        try:
            event, payload = decode_frame(raw)
        except InvalidArgument as e:
            client_log.warning(f"Rejected frame: {e.message}")
            await send(ERROR, failure(e.message))
            continue

        client_log.debug(f"Received {event}")

        task = asyncio.create_task(respond(event, payload))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    for task in list(tasks):
        task.cancel()
    client_log.info("Disconnected")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api_server:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.is_development,
    )
