from edubot.schemas.events import EventKind, InboundEvent
from edubot.schemas.outbound import Button, ListRow, ListSection, SendResult
from edubot.schemas.webhook import WebhookAck, WhatsAppWebhook

__all__ = [
    "EventKind",
    "InboundEvent",
    "Button",
    "ListRow",
    "ListSection",
    "SendResult",
    "WebhookAck",
    "WhatsAppWebhook",
]
