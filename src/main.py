"""CLI entry point for the Sales Desk agent.

This provides a simple terminal-based chat interface for testing and
development. For production, use the FastAPI server (src/server.py).

Usage:
    python -m src.main            # normal mode (quiet)
    python -m src.main --debug    # debug mode (shows API calls)
    python -m src.main --trace    # also print thought/tool events
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import uuid

from dotenv import load_dotenv

from src.bootstrap import build_agent
from src.events import AgentEvent

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP and SQL loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

    # Always keep our own logger at INFO minimum so session starts show
    logging.getLogger("src").setLevel(logging.DEBUG if debug else logging.INFO)


class ConsolePrinter:
    """Event sink that renders a turn on stdout."""

    def __init__(self, trace: bool = False):
        self.trace = trace

    def __call__(self, event: AgentEvent) -> None:
        data = event.data
        if event.event == "assistant_message":
            print("\nAgent: ", end="", flush=True)
        elif event.event == "token":
            print(data["value"], end="", flush=True)
        elif event.event == "assistant_done":
            print("\n")
        elif event.event == "error":
            print(f"\n[error] {data['message']}\n")
        elif event.event == "state":
            user = data.get("authenticated_user")
            if user:
                print(f"[signed in as {user['name']}]")
        elif self.trace:
            if event.event == "thought":
                print(f"  · thought: {data['text']}")
            elif event.event == "tool":
                print(f"  · tool {data['name']} {json.dumps(data['input'], default=str)}")
            elif event.event == "tool_result":
                print(f"  · {data['name']} → {data['status']}")


async def chat_loop(trace: bool = False) -> None:
    """Run the interactive CLI chat loop."""
    print("\n" + "=" * 60)
    print("  Sales Desk Agent - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new conversation.")
    print("=" * 60 + "\n")

    runtime = await build_agent()
    printer = ConsolePrinter(trace=trace)
    conversation_id = str(uuid.uuid4())
    logger.info("Started new conversation: %s", conversation_id)

    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, "You: ")).strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if not user_input:
                continue

            if user_input.lower() in ("exit", "quit", "q"):
                print("\nGoodbye!")
                break

            if user_input.lower() == "new":
                conversation_id = str(uuid.uuid4())
                print(f"\n>> New conversation started: {conversation_id[:8]}...\n")
                continue

            await runtime.agent.run_turn(conversation_id, user_input, printer)
    finally:
        await runtime.aclose()


def main():
    parser = argparse.ArgumentParser(description="Sales Desk Agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument(
        "--trace", action="store_true",
        help="Print thought and tool events as they happen",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    try:
        asyncio.run(chat_loop(trace=args.trace))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")


if __name__ == "__main__":
    main()
