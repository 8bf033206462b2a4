"""Test helper that normalizes sys.path and environment defaults."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


_DEFAULT_ENV_VARS: dict[str, str] = {
    "MICROSOFT_CLIENT_ID": "test-client-id",
    "MICROSOFT_CLIENT_SECRET": "test-client-secret",
    "MICROSOFT_TENANT_ID": "common",
    "TWILIO_ACCOUNT_SID": "AC00000000000000000000000000000000",
    "TWILIO_AUTH_TOKEN": "test-auth-token",
    "TWILIO_PHONE_NUMBER": "+15550000000",
    "OPENROUTER_API_KEY": "test-openrouter-key",
    "TOKEN_ENCRYPTION_SECRET": "test-secret",
    "PUBLIC_BASE_URL": "https://assistant.example.com",
    "USER_PHONE_NUMBER": "+15551234567",
    "SQLITE_DB_PATH": str(
        Path(tempfile.gettempdir()) / f"sms-assistant-tests-{os.getpid()}.db"
    ),
}

for key, value in _DEFAULT_ENV_VARS.items():
    os.environ.setdefault(key, value)
