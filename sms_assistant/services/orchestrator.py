"""Drive one inbound SMS through the model, its tool calls, and the reply."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from textwrap import dedent
from typing import Any, Dict, Protocol

from sms_assistant.clients.completion import CompletionClient, ToolCall
from sms_assistant.clients.twilio_sms import MAX_SMS_LENGTH, truncate_sms
from sms_assistant.core.errors import (
    MalformedToolArgumentsError,
    ReauthenticationRequiredError,
    UnauthenticatedError,
)
from sms_assistant.core.logging import mask_phone
from sms_assistant.services.tools import ToolDispatcher, parse_tool_call

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I did not understand that."
TOOL_ERROR_REPLY = "Error processing request. Please try again."
APOLOGY_REPLY = "Sorry, an error occurred processing your message. Please try again."

FIRST_ROUND_MAX_TOKENS = 500
FOLLOW_UP_MAX_TOKENS = 300


class ReplySender(Protocol):
    async def send_sms(self, *, to: str, body: str) -> str: ...


def build_system_prompt(now: datetime | None = None) -> str:
    current = (now or datetime.now(timezone.utc)).strftime("%A, %B %d, %Y %H:%M UTC")
    return dedent(
        f"""
        You are a personal AI assistant integrated with Microsoft 365. You have access to:
        - Calendar (view upcoming events, create events)
        - Email (read recent inbox messages, send emails)
        - Contacts (view contacts)

        Always respond concisely, as messages are delivered via SMS (max {MAX_SMS_LENGTH} characters when possible).

        When the user asks about calendar, email, or contacts:
        1. Use the appropriate function to fetch/create the data
        2. Summarize the results in a natural, brief way
        3. If multiple functions are needed, call them sequentially

        Available functions: get_calendar_events, create_calendar_event, send_email, get_contacts, get_recent_emails

        Current time: {current}

        Always be helpful, friendly, and respect the user's privacy.
        """
    ).strip()


class SmsOrchestrator:
    """Turn one message into zero or more Graph actions and exactly one reply.

    Tool calls run strictly in the order the model returned them; each result
    is fed back through its own follow-up completion before the next call is
    dispatched. No conversation state survives between messages.
    """

    def __init__(
        self,
        completion_client: CompletionClient,
        dispatcher: ToolDispatcher,
        reply_sender: ReplySender,
        *,
        connect_url: str | None = None,
    ) -> None:
        self._completion = completion_client
        self._dispatcher = dispatcher
        self._sender = reply_sender
        self._connect_url = connect_url

    async def run(self, text: str, principal_id: str) -> str:
        """Return the reply for ``text``, already clipped to the SMS limit."""
        messages: list[Dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt()},
            {"role": "user", "content": text},
        ]
        tools = self._dispatcher.schemas

        first = await self._completion.complete(
            messages, tools=tools, max_tokens=FIRST_ROUND_MAX_TOKENS
        )
        reply = first.content or FALLBACK_REPLY

        if first.tool_calls:
            logger.info("Processing %d tool call(s)", len(first.tool_calls))
            if first.content:
                messages.append({"role": "assistant", "content": first.content})

        for call in first.tool_calls:
            tool_text, failed = await self._run_tool(call, principal_id)
            if failed:
                reply = TOOL_ERROR_REPLY
            messages.append(
                {"role": "user", "content": f"Tool result ({call.name}): {tool_text}"}
            )
            try:
                follow_up = await self._completion.complete(
                    messages, tools=tools, max_tokens=FOLLOW_UP_MAX_TOKENS
                )
            except Exception:  # noqa: BLE001
                logger.exception("Follow-up completion failed after %s", call.name)
                reply = TOOL_ERROR_REPLY
                continue
            if follow_up.content:
                reply = follow_up.content
                messages.append({"role": "assistant", "content": follow_up.content})

        return truncate_sms(reply)

    async def handle_message(self, sender: str, text: str, principal_id: str) -> str:
        reply = await self.run(text, principal_id)
        await self._sender.send_sms(to=sender, body=reply)
        logger.info("Reply sent to %s", mask_phone(sender))
        return reply

    async def process_inbound(self, sender: str, text: str, principal_id: str) -> None:
        """Detached entrypoint after the webhook ack; never raises."""
        logger.info("Incoming message from %s (%d chars)", mask_phone(sender), len(text))
        try:
            await self.handle_message(sender, text, principal_id)
            return
        except Exception:  # noqa: BLE001
            logger.exception("Error processing message from %s", mask_phone(sender))

        try:
            await self._sender.send_sms(to=sender, body=APOLOGY_REPLY)
        except Exception:  # noqa: BLE001
            logger.exception("Error sending apology to %s", mask_phone(sender))

    async def _run_tool(self, call: ToolCall, principal_id: str) -> tuple[str, bool]:
        """Execute one tool call; returns the text fed back and whether it failed."""
        try:
            invocation = parse_tool_call(call)
        except MalformedToolArgumentsError as exc:
            logger.warning("Rejected tool call: %s", exc)
            return f"Error: {exc}", True

        try:
            summary = await self._dispatcher.dispatch(invocation, principal_id)
        except (UnauthenticatedError, ReauthenticationRequiredError) as exc:
            logger.warning("Tool %s needs authorization: %s", invocation.name, exc)
            invocation.error = str(exc)
            hint = f" at {self._connect_url}" if self._connect_url else ""
            return (
                "Error: the Microsoft account is not connected. "
                f"Ask the user to sign in{hint}.",
                True,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error processing tool %s", invocation.name)
            invocation.error = str(exc)
            return f"Error: {invocation.name} failed ({exc.__class__.__name__}).", True

        logger.info("Tool %s result: %s", invocation.name, summary)
        return summary, False


__all__ = [
    "APOLOGY_REPLY",
    "FALLBACK_REPLY",
    "SmsOrchestrator",
    "TOOL_ERROR_REPLY",
    "build_system_prompt",
]
