"""Expose constructed client wrappers."""

from .completion import CompletionClient, CompletionResult, ToolCall
from .dynamodb import DynamoDBStore
from .graph import GraphClient
from .microsoft_auth import MicrosoftOAuthClient, OAuthStateEncoder, TokenGrant
from .sqlite_store import RecordStore, SQLiteStore
from .twilio_sms import TwilioClient, TwilioSignatureValidator

__all__ = [
    "CompletionClient",
    "CompletionResult",
    "DynamoDBStore",
    "GraphClient",
    "MicrosoftOAuthClient",
    "OAuthStateEncoder",
    "RecordStore",
    "SQLiteStore",
    "TokenGrant",
    "ToolCall",
    "TwilioClient",
    "TwilioSignatureValidator",
]
