"""Service layer exports."""

from .credential_store import CredentialStore
from .graph_tokens import GraphTokenService
from .notifications import MailNotificationService
from .orchestrator import SmsOrchestrator
from .subscription_store import SubscriptionStore
from .subscriptions import RenewalReport, SubscriptionManager
from .token_cipher import TokenCipherService
from .tools import ToolDispatcher

__all__ = [
    "CredentialStore",
    "GraphTokenService",
    "MailNotificationService",
    "RenewalReport",
    "SmsOrchestrator",
    "SubscriptionManager",
    "SubscriptionStore",
    "TokenCipherService",
    "ToolDispatcher",
]
