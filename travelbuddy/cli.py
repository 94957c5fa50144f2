#!/usr/bin/env python3
"""
TravelBuddy - Command Line Interface

Commands:
    serve   - Run the relay server
    status  - Check a running server's health and credentials
    chat    - Interactive session against a running server (typed input)
    demo    - Scripted session with an in-process relay

Usage:
    python -m travelbuddy.cli serve
    python -m travelbuddy.cli status
    python -m travelbuddy.cli chat --lat 34.6937 --lon 135.5023
    python -m travelbuddy.cli demo

For help on a specific command:
    python -m travelbuddy.cli <command> --help
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

# Add project root to path so api_server is importable from a checkout
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from travelbuddy.logger import init_logging, get_logger, set_console_level
from travelbuddy.config import settings

# Initialize logging
init_logging()
logger = get_logger(__name__)


DEMO_SCRIPT = (
    ["今日は", "今日はどこに"], "今日はどこに行けばいい？",
    ["雨の日"], "雨の日に楽しめる場所はある？",
)


def health_url(server_url: str) -> str:
    """Derive the HTTP health URL from a websocket server URL."""
    parsed = urlparse(server_url)
    scheme = "https" if parsed.scheme in ("wss", "https") else "http"
    return f"{scheme}://{parsed.netloc}/api/health"


def print_weather(session) -> None:
    view = session.view()
    if view.weather:
        w = view.weather
        print(f"🌤️  {w.location}: {w.temperature_celsius}°C, {w.condition} (humidity {w.humidity}%)")
    elif view.weather_error:
        print(f"⚠️  Weather unavailable: {view.weather_error}")
    else:
        print("⚠️  Weather unavailable")


def print_new_turns(session, shown: int) -> int:
    """Print turns added since ``shown``; return the new count."""
    from travelbuddy.realtime import Role

    turns = session.view().turns
    for turn in turns[shown:]:
        speaker = "You" if turn.role is Role.USER else "Bot"
        print(f"[{turn.display_time}] {speaker}: {turn.text}")
    return len(turns)


# ============================================================================
# Commands
# ============================================================================

def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the relay server with uvicorn.
    """
    import uvicorn

    host = args.host or settings.server.host
    port = args.port or settings.server.port

    print(f"\n🚀 Starting TravelBuddy relay on {host}:{port}")
    print("-" * 50)

    uvicorn.run(
        "api_server:app",
        host=host,
        port=port,
        reload=args.reload,
    )
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """
    Check a running server's health endpoint.
    """
    import requests

    url = health_url(args.url or settings.session.server_url)
    print(f"\n📡 Checking {url}")
    print("-" * 50)

    try:
        response = requests.get(url, timeout=args.timeout)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        print(f"❌ Server unreachable: {e}")
        return 1
    except ValueError:
        print("❌ Server returned a non-JSON response")
        return 1

    def mark(flag: bool) -> str:
        return "✅ Configured" if flag else "❌ Missing"

    print(f"   Status: {data.get('status', 'unknown')}")
    print(f"   Weather API Key: {mark(data.get('weather_configured', False))}")
    print(f"   OpenAI API Key: {mark(data.get('openai_configured', False))}")
    return 0


async def _run_chat(args: argparse.Namespace) -> int:
    import aiohttp

    from travelbuddy.realtime import (
        ScriptedSpeechAdapter,
        ScriptedUtterance,
        SessionOrchestrator,
        SpeechCapability,
        StaticGeolocation,
        WebSocketChannel,
    )

    url = args.url or settings.session.server_url
    adapter = ScriptedSpeechAdapter()
    geolocation = None
    if args.lat is not None and args.lon is not None:
        geolocation = StaticGeolocation(args.lat, args.lon)

    session = SessionOrchestrator(WebSocketChannel(url), SpeechCapability.available(adapter), geolocation)
    timeout = settings.openai.timeout_s + 5

    try:
        await session.start()
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        print(f"❌ Could not connect to {url}: {e}")
        return 1

    try:
        await session.settle(timeout=settings.session.geolocation_timeout_s + timeout)
        print_weather(session)
        print()

        shown = 0
        while True:
            try:
                user_input = (await asyncio.to_thread(input, "You: ")).strip()
            except (KeyboardInterrupt, EOFError):
                print("\n👋 Goodbye!")
                break

            if not user_input:
                continue

            if user_input.lower() == "/quit":
                print("\n👋 Goodbye!")
                break
            elif user_input.lower() == "/weather":
                print_weather(session)
                continue
            elif user_input.lower() == "/stats":
                stats = session.stats
                print(f"\n📊 Statistics:")
                print(f"   Connected: {stats['connected']}")
                print(f"   Weather: {stats['weather_state']}")
                print(f"   Your turns: {stats['user_turns']}")
                print(f"   Suggestions: {stats['assistant_turns']}")
                print()
                continue

            adapter.queue(ScriptedUtterance(final=user_input))
            if not await session.start_listening():
                print("⚠️  Not ready (disconnected or still waiting for a reply)")
                continue

            await session.settle(timeout=timeout)
            # Skip the echo of what was just typed
            turns = session.view().turns
            if len(turns) > shown and turns[shown].text == user_input:
                shown += 1
            shown = print_new_turns(session, shown)

            view = session.view()
            if view.chat_error:
                print(f"❌ {view.chat_error}")
            if view.speech_error:
                print(f"⚠️  {view.speech_error}")
            if not view.connected:
                print("❌ Connection lost")
                break
            print()
    finally:
        await session.stop()

    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    """
    Start an interactive session against a running relay server.
    """
    from travelbuddy.messages import example_query

    print("\n" + "=" * 60)
    print("🧳 TravelBuddy - Interactive Chat")
    print("=" * 60)
    print(f"Type what you would say, e.g. 「{example_query()}」. Commands:")
    print("  /weather - Show current weather")
    print("  /stats   - Show statistics")
    print("  /quit    - Exit chat")
    print("-" * 60)

    # Keep log lines out of the prompt
    if not args.verbose:
        set_console_level("WARNING")

    try:
        return asyncio.run(_run_chat(args))
    except asyncio.TimeoutError:
        print("❌ Timed out waiting for the server")
        return 1
    except Exception as e:
        print(f"❌ Chat failed: {e}")
        logger.exception("Chat error")
        return 1


async def _run_demo(args: argparse.Namespace) -> int:
    from travelbuddy.config import RelayConfig
    from travelbuddy.realtime import (
        LoopbackChannel,
        RelayServer,
        ScriptedSpeechAdapter,
        ScriptedUtterance,
        SessionOrchestrator,
        SpeechCapability,
        StaticGeolocation,
    )

    utterances = [
        ScriptedUtterance(interims=DEMO_SCRIPT[i], final=DEMO_SCRIPT[i + 1])
        for i in range(0, len(DEMO_SCRIPT), 2)
    ]
    adapter = ScriptedSpeechAdapter(utterances)
    geolocation: Optional[StaticGeolocation] = None
    if args.lat is not None and args.lon is not None:
        geolocation = StaticGeolocation(args.lat, args.lon)

    relay = RelayServer(RelayConfig.from_settings(settings))
    session = SessionOrchestrator(LoopbackChannel(relay), SpeechCapability.available(adapter), geolocation)
    timeout = settings.session.geolocation_timeout_s + settings.openai.timeout_s + 5

    await session.start()
    try:
        await session.settle(timeout=timeout)
        print_weather(session)
        print()

        shown = 0
        for _ in utterances:
            await session.start_listening()
            await session.settle(timeout=timeout)
            shown = print_new_turns(session, shown)
            if session.chat_error:
                print(f"❌ {session.chat_error}")
            print()
    finally:
        await session.stop()

    return 0


def cmd_demo(args: argparse.Namespace) -> int:
    """
    Run a scripted session against an in-process relay.
    """
    print("\n" + "=" * 60)
    print("🧳 TravelBuddy - Demo")
    print("=" * 60)

    if not args.verbose:
        set_console_level("WARNING")

    try:
        return asyncio.run(_run_demo(args))
    except Exception as e:
        print(f"❌ Demo failed: {e}")
        logger.exception("Demo error")
        return 1


# ============================================================================
# Parser
# ============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="travelbuddy",
        description="TravelBuddy - voice travel suggestions from the weather",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve --port 3001
  %(prog)s status
  %(prog)s chat --lat 35.0116 --lon 135.7681
  %(prog)s demo
        """,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the relay server",
    )
    serve_parser.add_argument("--host", help="Bind address (default: HOST)")
    serve_parser.add_argument("--port", type=int, help="Port (default: PORT)")
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # Status command
    status_parser = subparsers.add_parser(
        "status",
        help="Check a running server",
    )
    status_parser.add_argument(
        "--url",
        help="Server websocket URL (default: TRAVELBUDDY_SERVER_URL)",
    )
    status_parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Request timeout in seconds",
    )
    status_parser.set_defaults(func=cmd_status)

    # Chat command
    chat_parser = subparsers.add_parser(
        "chat",
        help="Interactive session against a running server",
    )
    chat_parser.add_argument(
        "--url",
        help="Server websocket URL (default: TRAVELBUDDY_SERVER_URL)",
    )
    chat_parser.add_argument("--lat", type=float, help="Latitude (default: Tokyo)")
    chat_parser.add_argument("--lon", type=float, help="Longitude (default: Tokyo)")
    chat_parser.set_defaults(func=cmd_chat)

    # Demo command
    demo_parser = subparsers.add_parser(
        "demo",
        help="Scripted session with an in-process relay",
    )
    demo_parser.add_argument("--lat", type=float, help="Latitude (default: Tokyo)")
    demo_parser.add_argument("--lon", type=float, help="Longitude (default: Tokyo)")
    demo_parser.set_defaults(func=cmd_demo)

    return parser


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    if args.verbose:
        import logging
        logging.getLogger().setLevel(logging.DEBUG)
        set_console_level("DEBUG")

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
