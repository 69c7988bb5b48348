from typing import Any, Optional

from pydantic import ValidationError

from edubot.logging_config import get_logger
from edubot.schemas.events import EventKind, InboundEvent
from edubot.schemas.webhook import WhatsAppMessage, WhatsAppWebhook

logger = get_logger("message_normalizer")


class MalformedEventError(Exception):
    def __init__(self, reason: str, message_id: Optional[str] = None):
        self.reason = reason
        self.message_id = message_id
        super().__init__(reason if not message_id else f"{reason} (message {message_id})")


def _first_message(webhook: WhatsAppWebhook) -> Optional[WhatsAppMessage]:
    for entry in webhook.entry:
        for change in entry.changes:
            if change.value.messages:
                return change.value.messages[0]
    return None


def _has_statuses(webhook: WhatsAppWebhook) -> bool:
    return any(change.value.statuses for entry in webhook.entry for change in entry.changes)


def _from_message(message: WhatsAppMessage) -> InboundEvent:
    if not message.from_:
        raise MalformedEventError("message has no sender", message.id)
    if not message.id:
        raise MalformedEventError("message has no provider id")

    base = {"from_address": message.from_, "provider_message_id": message.id, "raw_type": message.type}

    if message.type == "interactive" and message.interactive:
        interactive = message.interactive
        if interactive.type == "button_reply" and interactive.button_reply and interactive.button_reply.id:
            return InboundEvent(
                kind=EventKind.BUTTON,
                choice_id=interactive.button_reply.id,
                **base,
            )
        if interactive.type == "list_reply" and interactive.list_reply and interactive.list_reply.id:
            return InboundEvent(
                kind=EventKind.LIST,
                choice_id=interactive.list_reply.id,
                **base,
            )
        raise MalformedEventError("interactive reply without a choice id", message.id)

    body = message.text.body if message.text else None
    if body and body.strip():
        return InboundEvent(kind=EventKind.TEXT, text=body, **base)

    raise MalformedEventError(f"unsupported or empty message of type {message.type!r}", message.id)


def normalize(payload: dict[str, Any]) -> Optional[InboundEvent]:
    """Turn a WhatsApp Cloud webhook delivery into an InboundEvent.

    Returns None for deliveries that carry no message (status callbacks,
    empty envelopes). Raises MalformedEventError when a message is present
    but has neither text nor a choice id.
    """
    try:
        webhook = WhatsAppWebhook.model_validate(payload)
    except ValidationError as e:
        raise MalformedEventError(f"unparseable webhook envelope: {e.error_count()} error(s)") from e

    message = _first_message(webhook)
    if message is None:
        if _has_statuses(webhook):
            logger.debug("Status callback received, nothing to route")
        return None

    return _from_message(message)
