"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_completion_client,
    get_credential_store,
    get_graph_client,
    get_notification_service,
    get_oauth_client,
    get_oauth_state_encoder,
    get_orchestrator,
    get_record_store,
    get_signature_validator,
    get_subscription_manager,
    get_subscription_store,
    get_token_cipher_service,
    get_token_service,
    get_tool_dispatcher,
    get_twilio_client,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
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
