"""Public schema exports."""

from .auth import AuthorizationStart, OAuthConnection
from .webhooks import (
    GraphNotification,
    GraphNotificationBatch,
    InboundSms,
    SubscriptionCreateRequest,
    SubscriptionView,
)

__all__ = [
    "AuthorizationStart",
    "GraphNotification",
    "GraphNotificationBatch",
    "InboundSms",
    "OAuthConnection",
    "SubscriptionCreateRequest",
    "SubscriptionView",
]
