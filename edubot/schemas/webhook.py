from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WhatsAppText(BaseModel):
    body: Optional[str] = None


class WhatsAppReply(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class WhatsAppInteractive(BaseModel):
    type: Optional[str] = None  # button_reply, list_reply
    button_reply: Optional[WhatsAppReply] = None
    list_reply: Optional[WhatsAppReply] = None


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    timestamp: Optional[str] = None
    type: Optional[str] = None  # text, interactive, image, ...
    text: Optional[WhatsAppText] = None
    interactive: Optional[WhatsAppInteractive] = None


class WhatsAppStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    status: Optional[str] = None  # sent, delivered, read, failed
    recipient_id: Optional[str] = None


class WhatsAppValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    messaging_product: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    messages: list[WhatsAppMessage] = Field(default_factory=list)
    statuses: list[WhatsAppStatus] = Field(default_factory=list)


class WhatsAppChange(BaseModel):
    field: Optional[str] = None
    value: WhatsAppValue = Field(default_factory=WhatsAppValue)


class WhatsAppEntry(BaseModel):
    id: Optional[str] = None
    changes: list[WhatsAppChange] = Field(default_factory=list)


class WhatsAppWebhook(BaseModel):
    object: Optional[str] = None
    entry: list[WhatsAppEntry] = Field(default_factory=list)


class WebhookAck(BaseModel):
    status: str = "accepted"
