import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from edubot.config import Settings, settings
from edubot.logging_config import get_logger
from edubot.schemas.webhook import WebhookAck

logger = get_logger("webhook")

router = APIRouter()

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


def get_settings() -> Settings:
    return settings


def verify_signature(raw_body: bytes, header: Optional[str], app_secret: str) -> bool:
    """Check the provider's HMAC-SHA256 signature over the raw request body."""
    if not app_secret:
        logger.error("WHATSAPP_APP_SECRET not configured, rejecting webhook")
        return False
    if not header or not header.startswith(SIGNATURE_PREFIX):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, header[len(SIGNATURE_PREFIX) :])


@router.get("/webhook/whatsapp", response_class=PlainTextResponse)
async def verify_subscription(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    config: Settings = Depends(get_settings),
):
    """Subscription handshake: echo the challenge when the verify token matches."""
    if (
        mode == "subscribe"
        and config.whatsapp_verify_token
        and verify_token is not None
        and hmac.compare_digest(verify_token, config.whatsapp_verify_token)
    ):
        logger.info("Webhook subscription verified")
        return PlainTextResponse(challenge or "")
    logger.warning("Webhook subscription verification failed", extra={"context": {"mode": mode}})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhook/whatsapp", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    config: Settings = Depends(get_settings),
):
    """
    Acknowledge a delivery immediately and process it after the response:
    - bad signature -> 401, nothing processed
    - unparseable body -> 400
    - anything else (messages, status callbacks) -> 200
    """
    raw_body = await request.body()
    if not verify_signature(raw_body, request.headers.get(SIGNATURE_HEADER), config.whatsapp_app_secret):
        logger.warning("Webhook signature rejected")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    background_tasks.add_task(request.app.state.processor.process_payload, payload)
    return WebhookAck()
