"""
FastAPI routes for the SMS assistant.
"""

from __future__ import annotations

import hmac
import json
import logging
import uuid
from datetime import timedelta
from http import HTTPStatus
from typing import Annotated, Any, NoReturn, Optional
from urllib.parse import parse_qsl

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Body,
    Depends,
    Header,
    HTTPException,
    Query,
    Request,
    Response,
)
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import ValidationError

from sms_assistant.clients.microsoft_auth import MicrosoftOAuthClient, OAuthStateEncoder
from sms_assistant.clients.twilio_sms import TwilioSignatureValidator, empty_twiml
from sms_assistant.core.config import AppSettings
from sms_assistant.core.errors import (
    OAuthTokenExchangeError,
    ReauthenticationRequiredError,
    SignatureInvalidError,
    SmsAssistantError,
    UnauthenticatedError,
    UpstreamError,
)
from sms_assistant.core.logging import mask_phone
from sms_assistant.dependencies import (
    get_app_settings,
    get_notification_service,
    get_oauth_client,
    get_oauth_state_encoder,
    get_orchestrator,
    get_signature_validator,
    get_subscription_manager,
    get_token_service,
)
from sms_assistant.models.records import SubscriptionRecord, utcnow
from sms_assistant.schemas import (
    AuthorizationStart,
    GraphNotificationBatch,
    InboundSms,
    OAuthConnection,
    SubscriptionCreateRequest,
    SubscriptionView,
)
from sms_assistant.services.graph_tokens import GraphTokenService
from sms_assistant.services.notifications import MailNotificationService
from sms_assistant.services.orchestrator import SmsOrchestrator
from sms_assistant.services.subscriptions import SubscriptionManager

router = APIRouter()
logger = logging.getLogger(__name__)


def _raise_for_domain_error(exc: SmsAssistantError) -> NoReturn:
    if isinstance(exc, (UnauthenticatedError, ReauthenticationRequiredError)):
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Microsoft account not connected.",
        ) from exc
    if isinstance(exc, UpstreamError):
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail=f"Microsoft Graph request failed ({exc.operation}).",
        ) from exc
    raise exc


def _subscription_view(record: SubscriptionRecord) -> SubscriptionView:
    remaining = record.remaining(utcnow())
    return SubscriptionView(
        subscription_id=record.subscription_id,
        resource=record.resource,
        expires_at=record.expires_at.isoformat(),
        minutes_remaining=max(int(remaining.total_seconds() // 60), 0),
        change_type=record.change_type,
        notification_url=record.notification_url,
    )


def require_admin_key(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    x_admin_key: Annotated[Optional[str], Header()] = None,
) -> None:
    """Guard management endpoints when ``ADMIN_API_KEY`` is configured."""
    expected = settings.security.admin_api_key
    if expected and not hmac.compare_digest(
        expected.encode("utf-8"), (x_admin_key or "").encode("utf-8")
    ):
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Invalid admin key.")


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/microsoft/authorize", status_code=HTTPStatus.OK, response_model=None)
async def start_microsoft_oauth_flow(
    oauth_client: Annotated[MicrosoftOAuthClient, Depends(get_oauth_client)],
    state_encoder: Annotated[OAuthStateEncoder, Depends(get_oauth_state_encoder)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    principal_id: Optional[str] = Query(
        default=None, description="Principal to connect; defaults to the owner."
    ),
    redirect_to: Optional[str] = Query(
        default=None,
        description="Optional URL echoed back on successful authentication.",
    ),
    redirect: bool = Query(
        default=True,
        description="When false, return the consent URL as JSON instead of redirecting.",
    ),
) -> RedirectResponse | AuthorizationStart:
    """Kick off the OAuth flow by generating a state token and authorization URL."""
    state = state_encoder.encode(
        {
            "nonce": uuid.uuid4().hex,
            "principal_id": principal_id or settings.default_principal_id,
            "redirect_to": redirect_to,
        }
    )
    authorization_url = oauth_client.build_authorization_url(state=state)
    if redirect:
        return RedirectResponse(
            url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    return AuthorizationStart(authorization_url=authorization_url, state=state)


@router.get("/auth/microsoft/callback", status_code=HTTPStatus.OK)
async def handle_microsoft_oauth_callback(
    oauth_client: Annotated[MicrosoftOAuthClient, Depends(get_oauth_client)],
    state_encoder: Annotated[OAuthStateEncoder, Depends(get_oauth_state_encoder)],
    token_service: Annotated[GraphTokenService, Depends(get_token_service)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    code: Optional[str] = Query(None, description="Authorization code."),
    state: Optional[str] = Query(None, description="OAuth state token."),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
) -> OAuthConnection:
    """Complete the OAuth exchange and persist the delegated token pair."""
    if error:
        logger.warning("OAuth error returned by Microsoft: %s", error)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"Authentication failed: {error_description or error}",
        )
    if not code:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="No authorization code received."
        )
    if not state:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Missing OAuth state."
        )

    state_data = state_encoder.decode(
        state, max_age_seconds=settings.oauth.state_ttl_seconds
    )
    principal_id = state_data.get("principal_id") or settings.default_principal_id

    try:
        grant = await oauth_client.exchange_authorization_code(code)
    except OAuthTokenExchangeError as exc:
        logger.error("Authorization code exchange failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    record = token_service.store_grant(principal_id, grant)
    logger.info("Microsoft account connected for principal %s", principal_id)
    return OAuthConnection(
        status="connected",
        principal_id=principal_id,
        expires_at=record.expires_at.isoformat(),
        redirect_to=state_data.get("redirect_to"),
    )


@router.delete(
    "/auth/microsoft",
    status_code=HTTPStatus.OK,
    dependencies=[Depends(require_admin_key)],
)
async def disconnect_microsoft_account(
    token_service: Annotated[GraphTokenService, Depends(get_token_service)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    principal_id: Optional[str] = Query(None),
) -> OAuthConnection:
    """Forget the stored credential; the next Graph call needs a new consent."""
    principal = principal_id or settings.default_principal_id
    token_service.revoke(principal)
    return OAuthConnection(status="disconnected", principal_id=principal)


@router.post("/sms/inbound", status_code=HTTPStatus.OK)
async def twilio_inbound_sms(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: Annotated[SmsOrchestrator, Depends(get_orchestrator)],
    validator: Annotated[TwilioSignatureValidator, Depends(get_signature_validator)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    x_twilio_signature: Annotated[Optional[str], Header()] = None,
) -> Response:
    """Validate, acknowledge with empty TwiML, then process out of band."""
    try:
        raw_body = (await request.body()).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Body is not valid UTF-8."
        ) from exc
    form = dict(parse_qsl(raw_body, keep_blank_values=True))
    callback_url = settings.public_url(request.url.path)
    if request.url.query:
        callback_url = f"{callback_url}?{request.url.query}"

    try:
        validator.require_valid(callback_url, form, x_twilio_signature)
    except SignatureInvalidError:
        if settings.twilio.enforce_signature or settings.is_production:
            logger.warning("Invalid Twilio signature for %s", callback_url)
            raise HTTPException(
                status_code=HTTPStatus.FORBIDDEN, detail="Forbidden"
            ) from None
        logger.warning("Invalid Twilio signature ignored outside production")

    try:
        inbound = InboundSms.model_validate(form)
    except ValidationError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Missing From or Body."
        ) from exc

    logger.info(
        "Inbound SMS %s from %s", inbound.message_sid or "-", mask_phone(inbound.sender)
    )
    background_tasks.add_task(
        orchestrator.process_inbound,
        inbound.sender,
        inbound.body,
        settings.default_principal_id,
    )
    return Response(content=empty_twiml(), media_type="application/xml")


@router.post("/webhooks/microsoft", status_code=HTTPStatus.ACCEPTED)
async def microsoft_graph_webhook(
    request: Request,
    notification_service: Annotated[
        MailNotificationService, Depends(get_notification_service)
    ],
    validation_token: Optional[str] = Query(None, alias="validationToken"),
) -> Response:
    """Answer the subscription handshake or relay change notifications."""
    if validation_token:
        logger.info("Graph subscription validation handshake")
        return PlainTextResponse(validation_token, status_code=HTTPStatus.OK)

    try:
        payload: Any = json.loads(await request.body())
        batch = GraphNotificationBatch.model_validate(payload)
    except (ValueError, ValidationError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Invalid notification payload."
        ) from exc

    if batch.validation_tokens:
        return PlainTextResponse(batch.validation_tokens[0], status_code=HTTPStatus.OK)

    await notification_service.process_batch(batch.value)
    return Response(status_code=HTTPStatus.ACCEPTED)


@router.post(
    "/webhooks/microsoft/subscriptions",
    status_code=HTTPStatus.CREATED,
    dependencies=[Depends(require_admin_key)],
)
async def create_mail_subscription(
    manager: Annotated[SubscriptionManager, Depends(get_subscription_manager)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    payload: Annotated[Optional[SubscriptionCreateRequest], Body()] = None,
) -> SubscriptionView:
    """Register the inbox subscription pointing at this deployment."""
    request = payload or SubscriptionCreateRequest()
    ttl = timedelta(minutes=request.ttl_minutes) if request.ttl_minutes else None
    try:
        record = await manager.create(
            resource=request.resource or settings.notifications.subscription_resource,
            notification_url=settings.public_url("/api/webhooks/microsoft"),
            change_type=request.change_type,
            ttl=ttl,
            client_state=settings.notifications.client_state,
        )
    except SmsAssistantError as exc:
        _raise_for_domain_error(exc)
    return _subscription_view(record)


@router.get(
    "/webhooks/microsoft/subscriptions",
    status_code=HTTPStatus.OK,
    dependencies=[Depends(require_admin_key)],
)
async def list_mail_subscriptions(
    manager: Annotated[SubscriptionManager, Depends(get_subscription_manager)],
) -> dict:
    """List upstream subscriptions alongside the locally tracked expiries."""
    try:
        remote = await manager.list_remote()
    except SmsAssistantError as exc:
        _raise_for_domain_error(exc)
    local = [_subscription_view(record).model_dump() for record in manager.list_local()]
    return {"subscriptions": remote, "tracked": local}


@router.patch(
    "/webhooks/microsoft/subscriptions",
    status_code=HTTPStatus.OK,
    dependencies=[Depends(require_admin_key)],
)
async def renew_mail_subscriptions(
    manager: Annotated[SubscriptionManager, Depends(get_subscription_manager)],
) -> dict:
    """Renew every tracked subscription inside the renewal window."""
    report = await manager.renew_all_due()
    return {
        "renewed": report.renewed_ids,
        "failed": report.failed,
    }


@router.delete(
    "/webhooks/microsoft/subscriptions/{subscription_id}",
    status_code=HTTPStatus.NO_CONTENT,
    dependencies=[Depends(require_admin_key)],
)
async def delete_mail_subscription(
    subscription_id: str,
    manager: Annotated[SubscriptionManager, Depends(get_subscription_manager)],
) -> Response:
    try:
        await manager.delete(subscription_id)
    except SmsAssistantError as exc:
        _raise_for_domain_error(exc)
    logger.info("Subscription deleted: %s", subscription_id)
    return Response(status_code=HTTPStatus.NO_CONTENT)


__all__ = ["router"]
