# PYTHON_ARGCOMPLETE_OK
"""
Command line interface for guibridge.
Provides the `guibridge` entry point: serve the MCP tools, check the agent
socket, or print setup instructions.
"""

import argparse
import asyncio
import json
import logging
import sys

import argcomplete

from guibridge import __version__
from guibridge.channel.client import AgentChannel
from guibridge.config import BridgeConfig
from guibridge.errors import BridgeError
from guibridge.sources import SOURCES

logger = logging.getLogger(__name__)

GUIDE = """\
guibridge setup
===============

1. Run the agent inside the application you want to drive:

       from guibridge.channel import InProcessAgent

       agent = InProcessAgent()
       agent.install_log_handler()
       agent.start()

   Call agent.on_frame(frame_ms) once per rendered frame, apply the events
   returned by agent.take_pending_inputs(), and answer
   agent.take_screenshot_request() with agent.set_screenshot(png_bytes).
   Pass screenshot_provider= or input_sink=PynputInputSink() instead when the
   host cannot do this from its frame loop.

2. Enable accessibility for the application:
   - macOS: grant the terminal or MCP client access under
     System Settings > Privacy & Security > Accessibility.
   - Linux: make sure the AT-SPI bus is running (at-spi2-core) and the
     toolkit exposes accessibility (e.g. GTK_MODULES=gail:atk-bridge).

3. Register the server with your MCP client:

       {
         "mcpServers": {
           "guibridge": {
             "command": "guibridge",
             "args": ["serve"],
             "env": {"GUIBRIDGE_APP_NAME": "My App"}
           }
         }
       }

Environment: GUIBRIDGE_APP_NAME, GUIBRIDGE_SOCKET, GUIBRIDGE_SOURCE,
GUIBRIDGE_LOG_LEVEL, GUIBRIDGE_MAX_MESSAGE_SIZE, GUIBRIDGE_BUS_TIMEOUT.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guibridge",
        description="Inspect and drive GUI applications through accessibility APIs and an in-process agent",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", type=str, default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default: GUIBRIDGE_LOG_LEVEL or INFO)")
    parser.add_argument("--socket", type=str, default=None,
                        help="Agent socket path (default: GUIBRIDGE_SOCKET or a runtime directory)")

    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the MCP server on stdio")
    serve.add_argument("--app-name", type=str, default=None,
                       help="Name of the target application (default: GUIBRIDGE_APP_NAME)")
    serve.add_argument("--source", type=str, default=None, choices=SOURCES,
                       help="Accessibility backend (default: GUIBRIDGE_SOURCE or auto)")

    subparsers.add_parser("check", help="Ping the agent socket and print the result as JSON")
    subparsers.add_parser("guide", help="Print setup instructions")
    return parser


def configure_logging(level: str):
    # stdout carries the MCP stream
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


async def check_agent(config: BridgeConfig) -> dict:
    """Ping the agent once and describe the outcome."""
    channel = AgentChannel(
        config.socket_path,
        max_message_size=config.max_message_size,
        request_timeout=config.request_timeout,
        connect_attempts=1,
    )
    if not channel.socket_available():
        return {"connected": False, "socket": config.socket_path, "error": "target_unavailable",
                "message": "No agent socket found"}
    try:
        await channel.ping()
    except BridgeError as e:
        return {"connected": False, "socket": config.socket_path, "error": e.code, "message": e.message}
    finally:
        await channel.close()
    return {"connected": True, "socket": config.socket_path, "message": "Agent is responding"}


def serve(config: BridgeConfig) -> int:
    if not config.app_name:
        print("Error: no target application. Pass --app-name or set GUIBRIDGE_APP_NAME.", file=sys.stderr)
        return 2

    from guibridge.server import BridgeServer
    from guibridge.tools import create_mcp_server

    bridge = BridgeServer(config)
    mcp = create_mcp_server(bridge)
    logger.info(f"Serving '{config.app_name}' over stdio (agent socket {config.socket_path})")
    # The MCP lifespan shuts the bridge down when the session ends
    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


def main(argv=None):
    """Main entry point for guibridge."""
    parser = build_parser()
    argcomplete.autocomplete(parser)
    args = parser.parse_args(argv)

    try:
        config = BridgeConfig.from_env().with_overrides(
            socket_path=args.socket,
            log_level=args.log_level,
            app_name=getattr(args, "app_name", None),
            source=getattr(args, "source", None),
        )
    except BridgeError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    configure_logging(config.log_level)

    if args.command == "guide":
        print(GUIDE)
        return 0
    if args.command == "check":
        result = asyncio.run(check_agent(config))
        print(json.dumps(result, indent=2))
        return 0 if result["connected"] else 1
    if args.command == "serve":
        return serve(config)

    parser.print_help()
    return 1
