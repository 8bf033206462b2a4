#!/usr/bin/env python
"""Try the assistant from a terminal: each line goes through the full tool loop,
and the reply is printed instead of being sent by SMS."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Protocol

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class Responder(Protocol):
    async def run(self, text: str, principal_id: str) -> str: ...


def _build_orchestrator() -> Responder:
    from sms_assistant.core.config import get_settings
    from sms_assistant.core.logging import configure_logging
    from sms_assistant.dependencies import get_orchestrator

    configure_logging(get_settings().log_level)
    return get_orchestrator()


def run_once(orchestrator: Responder, message: str, principal_id: str) -> int:
    reply = asyncio.run(orchestrator.run(message, principal_id))
    print(f"You: {message}")
    print(f"Assistant ({len(reply)} chars): {reply}\n")
    return 0


def run_interactive(orchestrator: Responder, principal_id: str) -> int:
    print("Interactive session. Every message is handled independently. "
          "Type 'exit' or 'quit' to end.\n")
    while True:
        try:
            message = input("You: ")
        except (EOFError, KeyboardInterrupt):
            print("\nGoodbye!")
            return 0
        if message.strip().lower() in {"exit", "quit"}:
            print("Goodbye!")
            return 0
        if not message.strip():
            continue
        reply = asyncio.run(orchestrator.run(message, principal_id))
        print(f"Assistant: {reply}\n")


def main(argv: list[str] | None = None, orchestrator: Responder | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Send a message through the SMS assistant without Twilio."
    )
    parser.add_argument(
        "message",
        nargs="?",
        help="Single message to send. If omitted, interactive mode is started.",
    )
    parser.add_argument(
        "--principal",
        default="default",
        help="Principal whose Microsoft credentials are used (default: default).",
    )
    args = parser.parse_args(argv)

    responder = orchestrator or _build_orchestrator()
    if args.message:
        return run_once(responder, args.message, args.principal)
    return run_interactive(responder, args.principal)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
