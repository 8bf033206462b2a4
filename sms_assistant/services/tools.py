"""
The fixed action set the language model may invoke, with argument validation,
dispatch to the Graph client and result summarization.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sms_assistant.clients.completion import ToolCall
from sms_assistant.clients.graph import GraphClient, parse_graph_datetime
from sms_assistant.core.errors import MalformedToolArgumentsError

logger = logging.getLogger(__name__)

MAX_RESULT_LENGTH = 500
SUMMARY_ITEM_LIMIT = 3


class _ToolArguments(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CalendarEventsArgs(_ToolArguments):
    days_ahead: Optional[int] = Field(None, ge=1, le=62)


class CreateEventArgs(_ToolArguments):
    title: str = Field(..., min_length=1)
    start_time: str = Field(..., alias="startTime", min_length=1)
    end_time: str = Field(..., alias="endTime", min_length=1)
    description: Optional[str] = None
    attendees: list[str] = Field(default_factory=list)


class SendEmailArgs(_ToolArguments):
    to: list[str] = Field(..., min_length=1)
    subject: str
    body: str
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)


class ContactsArgs(_ToolArguments):
    limit: Optional[int] = Field(None, ge=1, le=50)


class RecentEmailsArgs(_ToolArguments):
    limit: Optional[int] = Field(None, ge=1, le=25)


TOOL_SCHEMAS: list[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "get_calendar_events",
            "description": "Fetch calendar events for today or a specific date range",
            "parameters": {
                "type": "object",
                "properties": {
                    "days_ahead": {
                        "type": "number",
                        "description": "Number of days to look ahead (default: 7)",
                    },
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "create_calendar_event",
            "description": "Create a new calendar event",
            "parameters": {
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Event title"},
                    "startTime": {"type": "string", "description": "Start time (ISO 8601, UTC)"},
                    "endTime": {"type": "string", "description": "End time (ISO 8601, UTC)"},
                    "description": {"type": "string", "description": "Event description"},
                    "attendees": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Email addresses of attendees",
                    },
                },
                "required": ["title", "startTime", "endTime"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "send_email",
            "description": "Send an email through Outlook",
            "parameters": {
                "type": "object",
                "properties": {
                    "to": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Recipient email addresses",
                    },
                    "subject": {"type": "string", "description": "Email subject"},
                    "body": {"type": "string", "description": "Email body"},
                    "cc": {"type": "array", "items": {"type": "string"}, "description": "CC recipients"},
                    "bcc": {"type": "array", "items": {"type": "string"}, "description": "BCC recipients"},
                },
                "required": ["to", "subject", "body"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_contacts",
            "description": "Fetch contact information",
            "parameters": {
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "number",
                        "description": "Maximum number of contacts (default: 10)",
                    },
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_recent_emails",
            "description": "List the most recent messages in the Outlook inbox",
            "parameters": {
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "number",
                        "description": "Maximum number of messages (default: 5)",
                    },
                },
                "required": [],
            },
        },
    },
]

_ARGUMENT_MODELS: Dict[str, type[_ToolArguments]] = {
    "get_calendar_events": CalendarEventsArgs,
    "create_calendar_event": CreateEventArgs,
    "send_email": SendEmailArgs,
    "get_contacts": ContactsArgs,
    "get_recent_emails": RecentEmailsArgs,
}

TOOL_NAMES: tuple[str, ...] = tuple(_ARGUMENT_MODELS)


@dataclass(slots=True)
class ToolInvocation:
    """One model-requested action; lives only for the current orchestration round."""

    call_id: str
    name: str
    arguments: Optional[_ToolArguments] = None
    result: str = ""
    error: Optional[str] = None


def parse_tool_call(call: ToolCall) -> ToolInvocation:
    """Validate a raw tool call into typed arguments.

    Raises ``MalformedToolArgumentsError`` for unknown tools, invalid JSON or
    arguments that do not satisfy the tool's schema.
    """
    model = _ARGUMENT_MODELS.get(call.name)
    if model is None:
        raise MalformedToolArgumentsError(call.name or "<unnamed>", "unknown tool")
    try:
        raw = json.loads(call.arguments or "{}")
    except json.JSONDecodeError as exc:
        raise MalformedToolArgumentsError(call.name, f"invalid JSON ({exc.msg})") from exc
    except TypeError as exc:
        raise MalformedToolArgumentsError(call.name, "arguments must be JSON text") from exc
    if not isinstance(raw, dict):
        raise MalformedToolArgumentsError(call.name, "arguments must be a JSON object")
    try:
        arguments = model.model_validate(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise MalformedToolArgumentsError(call.name, problems) from exc
    return ToolInvocation(call_id=call.id, name=call.name, arguments=arguments)


def _clip(text: str) -> str:
    if len(text) > MAX_RESULT_LENGTH:
        return text[: MAX_RESULT_LENGTH - 3] + "..."
    return text


def _event_label(event: Dict[str, Any]) -> str:
    subject = event.get("subject") or "Untitled event"
    start_raw = (event.get("start") or {}).get("dateTime")
    if not start_raw:
        return subject
    try:
        start = parse_graph_datetime(start_raw)
    except ValueError:
        return subject
    return f"{subject} at {start:%a %H:%M}"


def _contact_label(contact: Dict[str, Any]) -> str:
    if contact.get("displayName"):
        return contact["displayName"]
    addresses = contact.get("emailAddresses") or []
    if addresses and addresses[0].get("address"):
        return addresses[0]["address"]
    return "Unknown"


def _message_label(message: Dict[str, Any]) -> str:
    subject = message.get("subject") or "(no subject)"
    sender = ((message.get("from") or {}).get("emailAddress") or {}).get("name")
    return f"{subject} from {sender}" if sender else subject


class ToolDispatcher:
    """Route validated invocations to the Graph client and summarize the result."""

    def __init__(self, graph_client: GraphClient) -> None:
        self._graph = graph_client
        self._handlers: Dict[str, Callable[[Any, str], Awaitable[str]]] = {
            "get_calendar_events": self._get_calendar_events,
            "create_calendar_event": self._create_calendar_event,
            "send_email": self._send_email,
            "get_contacts": self._get_contacts,
            "get_recent_emails": self._get_recent_emails,
        }

    @property
    def schemas(self) -> list[Dict[str, Any]]:
        return TOOL_SCHEMAS

    async def dispatch(self, invocation: ToolInvocation, principal_id: str) -> str:
        handler = self._handlers[invocation.name]
        summary = _clip(await handler(invocation.arguments, principal_id))
        invocation.result = summary
        return summary

    async def _get_calendar_events(self, args: CalendarEventsArgs, principal_id: str) -> str:
        events = await self._graph.list_upcoming_events(
            days_ahead=args.days_ahead or 7, principal_id=principal_id
        )
        if not events:
            return "No upcoming events found."
        return "; ".join(_event_label(event) for event in events[:SUMMARY_ITEM_LIMIT])

    async def _create_calendar_event(self, args: CreateEventArgs, principal_id: str) -> str:
        await self._graph.create_event(
            title=args.title,
            start_time=args.start_time,
            end_time=args.end_time,
            description=args.description,
            attendees=args.attendees,
            principal_id=principal_id,
        )
        return f'Event "{args.title}" created successfully.'

    async def _send_email(self, args: SendEmailArgs, principal_id: str) -> str:
        await self._graph.send_mail(
            to=args.to,
            subject=args.subject,
            body=args.body,
            cc=args.cc,
            bcc=args.bcc,
            principal_id=principal_id,
        )
        return f"Email sent to {', '.join(args.to)}."

    async def _get_contacts(self, args: ContactsArgs, principal_id: str) -> str:
        contacts = await self._graph.list_contacts(
            limit=args.limit or 10, principal_id=principal_id
        )
        if not contacts:
            return "No contacts found."
        return ", ".join(_contact_label(contact) for contact in contacts[:SUMMARY_ITEM_LIMIT])

    async def _get_recent_emails(self, args: RecentEmailsArgs, principal_id: str) -> str:
        messages = await self._graph.list_recent_messages(
            limit=args.limit or 5, principal_id=principal_id
        )
        if not messages:
            return "Inbox is empty."
        return "; ".join(_message_label(message) for message in messages[:SUMMARY_ITEM_LIMIT])


__all__ = [
    "TOOL_NAMES",
    "TOOL_SCHEMAS",
    "ToolDispatcher",
    "ToolInvocation",
    "parse_tool_call",
]
