"""
Error taxonomy shared by the clients, services and route handlers.

Clients raise these at the network seams; the orchestrator and the routes
decide how each one surfaces to the SMS sender or the HTTP caller.
"""

from __future__ import annotations


class SmsAssistantError(Exception):
    """Base class for all domain errors raised by the assistant."""


class UnauthenticatedError(SmsAssistantError):
    """No credential record is on file for the principal."""

    def __init__(self, principal_id: str) -> None:
        super().__init__(f"No Microsoft credentials stored for principal {principal_id!r}.")
        self.principal_id = principal_id


class ReauthenticationRequiredError(SmsAssistantError):
    """A stored credential was permanently rejected; the user must sign in again."""

    def __init__(self, principal_id: str, detail: str = "") -> None:
        message = f"Microsoft credential rejected for principal {principal_id!r}."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)
        self.principal_id = principal_id
        self.detail = detail


class UpstreamError(SmsAssistantError):
    """An upstream HTTP call failed; carries the status and body for diagnostics."""

    def __init__(
        self,
        operation: str,
        *,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        status = status_code if status_code is not None else "network"
        super().__init__(f"{operation} failed ({status}): {body[:200]}")
        self.operation = operation
        self.status_code = status_code
        self.body = body


class TransientUpstreamError(UpstreamError):
    """Network error, timeout, throttling or 5xx; the caller may retry."""


class UpstreamRejectedError(UpstreamError):
    """A 4xx other than an auth failure; the request was malformed or forbidden."""


class MalformedToolArgumentsError(SmsAssistantError):
    """The language model produced arguments that do not fit the tool schema."""

    def __init__(self, tool_name: str, detail: str) -> None:
        super().__init__(f"Invalid arguments for {tool_name}: {detail}")
        self.tool_name = tool_name
        self.detail = detail


class SignatureInvalidError(SmsAssistantError):
    """The inbound webhook failed its authenticity check."""


class CredentialNotFoundError(SmsAssistantError):
    """An in-place credential update targeted a principal with no record."""


class OAuthTokenExchangeError(SmsAssistantError):
    """The token endpoint refused an authorization code exchange."""


__all__ = [
    "CredentialNotFoundError",
    "MalformedToolArgumentsError",
    "OAuthTokenExchangeError",
    "ReauthenticationRequiredError",
    "SignatureInvalidError",
    "SmsAssistantError",
    "TransientUpstreamError",
    "UnauthenticatedError",
    "UpstreamError",
    "UpstreamRejectedError",
]
