"""Schemas for inbound webhook payloads (Twilio SMS and Graph notifications)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class InboundSms(BaseModel):
    """Fields read from Twilio's form-encoded inbound message webhook."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sender: str = Field(..., alias="From", min_length=1)
    body: str = Field(..., alias="Body", min_length=1)
    message_sid: Optional[str] = Field(None, alias="MessageSid")


class GraphNotification(BaseModel):
    """One change notification delivered by Microsoft Graph."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subscription_id: Optional[str] = Field(None, alias="subscriptionId")
    change_type: str = Field("", alias="changeType")
    resource: str = ""
    client_state: Optional[str] = Field(None, alias="clientState")
    resource_data: Dict[str, Any] = Field(default_factory=dict, alias="resourceData")

    @property
    def is_new_message(self) -> bool:
        return self.change_type == "created" and "messages" in self.resource.lower()


class GraphNotificationBatch(BaseModel):
    value: List[Any] = Field(default_factory=list)
    validation_tokens: List[str] = Field(default_factory=list, alias="validationTokens")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SubscriptionCreateRequest(BaseModel):
    """Optional overrides when registering the inbox subscription."""

    resource: Optional[str] = None
    change_type: str = "created"
    ttl_minutes: Optional[int] = Field(None, ge=1, le=10080)


class SubscriptionView(BaseModel):
    subscription_id: str
    resource: str
    expires_at: str
    minutes_remaining: int
    change_type: Optional[str] = None
    notification_url: Optional[str] = None


__all__ = [
    "GraphNotification",
    "GraphNotificationBatch",
    "InboundSms",
    "SubscriptionCreateRequest",
    "SubscriptionView",
]
