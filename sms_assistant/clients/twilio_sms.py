"""
Twilio helpers: outbound SMS over the REST API and inbound webhook signatures.
"""

from __future__ import annotations

import logging
from typing import Mapping

import httpx
from twilio.request_validator import RequestValidator
from twilio.twiml.messaging_response import MessagingResponse

from sms_assistant.core.config import TwilioSettings
from sms_assistant.core.errors import SignatureInvalidError
from sms_assistant.core.logging import mask_phone
from sms_assistant.utils.http import NO_RETRY, send_with_retry

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 160

FormParams = Mapping[str, str]


def truncate_sms(text: str, limit: int = MAX_SMS_LENGTH) -> str:
    """Clip text to the single-segment SMS limit."""
    return (text or "")[:limit]


class TwilioSignatureValidator:
    """Check ``X-Twilio-Signature`` headers against the account auth token.

    The URL must be the full public callback URL Twilio requested, including
    any query string.
    """

    def __init__(self, auth_token: str) -> None:
        self._validator = RequestValidator(auth_token)

    def compute_signature(self, url: str, params: FormParams) -> str:
        return self._validator.compute_signature(url, dict(params))

    def is_valid(self, url: str, params: FormParams, signature: str | None) -> bool:
        if not signature:
            return False
        return self._validator.validate(url, dict(params), signature)

    def require_valid(self, url: str, params: FormParams, signature: str | None) -> None:
        if not self.is_valid(url, params, signature):
            raise SignatureInvalidError("Twilio request signature mismatch.")


def empty_twiml() -> str:
    """TwiML acknowledgement with no reply message."""
    return str(MessagingResponse())


class TwilioClient:
    """Send SMS messages through the Programmable Messaging REST API."""

    def __init__(
        self,
        settings: TwilioSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    @property
    def messages_url(self) -> str:
        base = self._settings.api_base_url.rstrip("/")
        return f"{base}/2010-04-01/Accounts/{self._settings.account_sid}/Messages.json"

    async def send_sms(self, *, to: str, body: str) -> str:
        """Send one message and return the provider-assigned SID."""
        payload = {
            "From": self._settings.phone_number,
            "To": to,
            "Body": truncate_sms(body),
        }
        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            auth=(self._settings.account_sid, self._settings.auth_token),
        ) as client:
            response = await send_with_retry(
                client.post,
                self.messages_url,
                operation="send sms",
                retry_config=NO_RETRY,
                data=payload,
            )

        sid = response.json().get("sid", "")
        logger.info("SMS sent to %s, SID: %s", mask_phone(to), sid)
        return sid


__all__ = [
    "MAX_SMS_LENGTH",
    "TwilioClient",
    "TwilioSignatureValidator",
    "empty_twiml",
    "truncate_sms",
]
