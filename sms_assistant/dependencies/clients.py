"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from datetime import timedelta
from functools import lru_cache

from sms_assistant.clients import (
    CompletionClient,
    DynamoDBStore,
    GraphClient,
    MicrosoftOAuthClient,
    OAuthStateEncoder,
    RecordStore,
    SQLiteStore,
    TwilioClient,
    TwilioSignatureValidator,
)
from sms_assistant.core.config import get_settings
from sms_assistant.services import (
    CredentialStore,
    GraphTokenService,
    MailNotificationService,
    SmsOrchestrator,
    SubscriptionManager,
    SubscriptionStore,
    TokenCipherService,
    ToolDispatcher,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_record_store() -> RecordStore:
    """Provide the configured record store (SQLite unless DynamoDB is selected)."""
    settings = _settings()
    if settings.storage.backend == "dynamodb":
        return DynamoDBStore(settings.storage)
    return SQLiteStore(settings.storage.sqlite_db_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = (
        settings.security.token_encryption_secret or settings.microsoft.client_secret
    )
    return TokenCipherService(secret=secret)


@lru_cache()
def get_credential_store() -> CredentialStore:
    return CredentialStore(get_record_store(), get_token_cipher_service())


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Microsoft client secret."""
    settings = _settings()
    return OAuthStateEncoder(secret_key=settings.microsoft.client_secret)


@lru_cache()
def get_oauth_client() -> MicrosoftOAuthClient:
    """Create a singleton Microsoft identity platform client."""
    settings = _settings()
    return MicrosoftOAuthClient(
        settings.microsoft,
        settings.oauth,
        redirect_uri=settings.oauth_redirect_uri,
        timeout=settings.http_timeout_seconds,
    )


@lru_cache()
def get_token_service() -> GraphTokenService:
    """Provide the single-flight token refresher shared by every request."""
    settings = _settings()
    return GraphTokenService(
        get_credential_store(),
        get_oauth_client(),
        refresh_skew=timedelta(seconds=settings.oauth.refresh_skew_seconds),
    )


@lru_cache()
def get_subscription_store() -> SubscriptionStore:
    return SubscriptionStore(get_record_store())


@lru_cache()
def get_graph_client() -> GraphClient:
    """Provide the Microsoft Graph data-plane client."""
    settings = _settings()
    return GraphClient(
        get_token_service(),
        get_subscription_store(),
        base_url=settings.microsoft.graph_base_url,
        default_principal_id=settings.default_principal_id,
        timeout=settings.http_timeout_seconds,
    )


@lru_cache()
def get_subscription_manager() -> SubscriptionManager:
    settings = _settings()
    return SubscriptionManager(
        get_graph_client(),
        get_subscription_store(),
        default_ttl=timedelta(minutes=settings.notifications.subscription_ttl_minutes),
        default_window=timedelta(minutes=settings.notifications.renewal_window_minutes),
    )


@lru_cache()
def get_completion_client() -> CompletionClient:
    """Provide the chat completion client."""
    settings = _settings()
    return CompletionClient(
        settings.completion, referer=str(settings.public_base_url)
    )


@lru_cache()
def get_twilio_client() -> TwilioClient:
    settings = _settings()
    return TwilioClient(settings.twilio, timeout=settings.http_timeout_seconds)


@lru_cache()
def get_signature_validator() -> TwilioSignatureValidator:
    """Provide the inbound webhook signature validator."""
    return TwilioSignatureValidator(_settings().twilio.auth_token)


@lru_cache()
def get_tool_dispatcher() -> ToolDispatcher:
    return ToolDispatcher(get_graph_client())


@lru_cache()
def get_orchestrator() -> SmsOrchestrator:
    """Build the SMS orchestrator wired to the completion, Graph and Twilio clients."""
    settings = _settings()
    return SmsOrchestrator(
        get_completion_client(),
        get_tool_dispatcher(),
        get_twilio_client(),
        connect_url=settings.public_url("/api/auth/microsoft/authorize"),
    )


@lru_cache()
def get_notification_service() -> MailNotificationService:
    settings = _settings()
    return MailNotificationService(
        get_twilio_client(),
        client_state=settings.notifications.client_state,
        destination_number=settings.notifications.user_phone_number,
    )


__all__ = [
    "get_completion_client",
    "get_credential_store",
    "get_graph_client",
    "get_notification_service",
    "get_oauth_client",
    "get_oauth_state_encoder",
    "get_orchestrator",
    "get_record_store",
    "get_signature_validator",
    "get_subscription_manager",
    "get_subscription_store",
    "get_token_cipher_service",
    "get_token_service",
    "get_tool_dispatcher",
    "get_twilio_client",
]
