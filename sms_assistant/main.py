"""
FastAPI application entrypoint for the SMS assistant.
"""

from __future__ import annotations

from fastapi import FastAPI

from sms_assistant.api.routes import router as api_router
from sms_assistant.core.config import get_settings
from sms_assistant.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="AI SMS Assistant",
        version="0.1.0",
        description=(
            "Answers SMS messages with Microsoft 365 calendar, mail and contact "
            "actions, and texts the owner about new mail."
        ),
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
